"""GUI adapter layer.

This package provides thin Qt-shaped adapters over the marketsync engine.

Notes
-----
Adapters exist to:
- keep ledger calls and settlement waits off the UI thread,
- forward published EngineState values to widgets as Qt signals,
- keep GUI code free of web3 details.
"""
