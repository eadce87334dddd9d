"""Up/down paper trading engine.

Manage short-lived UP/DOWN positions on a recurring fixed-expiry market
against a persisted virtual ledger: gate and size entries, run the exit
cascade, settle expiring markets and emit trade events. Paper trading only;
no real orders are placed.
"""
