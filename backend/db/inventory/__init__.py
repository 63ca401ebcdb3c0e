"""
Inventory ledger tables.

Models:
- InventoryItem (one stocked item per owner, current quantity)
- QuantityAdjustment (append-only deltas; quantity == sum of deltas)
"""
