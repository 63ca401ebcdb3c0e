from decimal import Decimal

INITIAL_STOCK_REASON = "Initial stock"
RECONCILIATION_REASON = "Reconciliation"

CATEGORIES = [
    "Dough & Flour",
    "Sauces",
    "Cheeses",
    "Meats",
    "Vegetables",
    "Toppings",
    "Spices & Herbs",
    "Packaging",
    "Beverages",
    "Cleaning Supplies",
    "Equipment",
    "Other",
]

UNITS = [
    "units",
    "kg",
    "g",
    "lbs",
    "oz",
    "liters",
    "ml",
    "gallons",
    "pack",
    "box",
    "case",
    "bottle",
    "can",
    "jar",
]

ADJUSTMENT_REASONS = [
    "Delivery Received",
    "Stock Count Correction",
    "Waste/Damage",
    "Theft/Loss",
    "Production Usage",
    "Transfer In",
    "Transfer Out",
    "Other",
]

NAME_MAX_LENGTH = 100
CATEGORY_MAX_LENGTH = 50
UNIT_MAX_LENGTH = 20
SUPPLIER_MAX_LENGTH = 100

MAX_QUANTITY = Decimal("1000000")
MAX_MIN_STOCK = Decimal("100000")
MAX_PRICE = Decimal("1000000")
MAX_ADJUSTMENT = Decimal("100000")
