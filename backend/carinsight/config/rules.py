# /carinsight/config/rules.py

# Static eligibility data for ride-hailing categories and the vocabulary used
# to normalize free-text vehicle attributes. Runtime thresholds (age cutoffs,
# keyword lists) live in Settings; these are the defaults the rule engine
# falls back to.

# Models that can never be Uber Black, whatever the year, price or brand.
# Matching is a case-insensitive substring test against the vehicle model,
# so "Onix" also blocks "Onix Plus" and "HB20" blocks "HB20S".
BLACK_EXCLUSIONS = (
    "HB20",
    "HB20S",
    "Onix",
    "Onix Plus",
    "Prisma",
    "Cronos",
    "Grand Siena",
    "Siena",
    "Voyage",
    "Virtus",
    "Ka",
    "Ka Sedan",
    "Yaris",
    "Etios",
    "Versa",
    "V-Drive",
    "City",
    "Logan",
    "Sandero",
    "Argo",
    "Mobi",
    "Kwid",
    "March",
    "Gol",
    "Fox",
)

# Brands whose sedans/SUVs are accepted in the premium category.
BLACK_ALLOWED_BRANDS = frozenset({
    "audi", "bmw", "byd", "caoa chery", "chery", "chevrolet", "citroen", "citroën",
    "ford", "gwm", "honda", "hyundai", "jeep", "kia", "land rover", "lexus",
    "mercedes-benz", "mitsubishi", "nissan", "peugeot", "renault", "toyota",
    "volkswagen", "vw", "volvo",
})

# Body types per category (values of BodyType).
UBER_X_BODY_TYPES = frozenset({"hatch", "sedan", "suv", "minivan"})
UBER_COMFORT_BODY_TYPES = frozenset({"sedan", "suv", "minivan"})
UBER_BLACK_BODY_TYPES = frozenset({"sedan", "suv"})
FAMILY_BODY_TYPES = frozenset({"suv", "sedan", "minivan"})

MIN_RIDE_HAILING_DOORS = 4
MIN_FAMILY_DOORS = 4

# Free-text spellings seen in catalogs and customer messages, mapped onto
# BodyType values. Anything not listed goes through fuzzy matching.
BODY_TYPE_ALIASES = {
    "hatch": "hatch",
    "hatchback": "hatch",
    "sedan": "sedan",
    "sedã": "sedan",
    "seda": "sedan",
    "suv": "suv",
    "utilitario esportivo": "suv",
    "crossover": "suv",
    "minivan": "minivan",
    "monovolume": "minivan",
    "pickup": "pickup",
    "picape": "pickup",
    "caminhonete": "pickup",
    "van": "van",
    "furgao": "van",
    "furgão": "van",
    "moto": "motorcycle",
    "motocicleta": "motorcycle",
    "motorcycle": "motorcycle",
}

# Minimum fuzzy score (rapidfuzz token_sort_ratio) to accept a body type guess.
BODY_TYPE_FUZZY_THRESHOLD = 85

# Ride-hailing categories as written by customers and rule sources.
CATEGORY_ALIASES = {
    "uberx": "uber_x",
    "uber x": "uber_x",
    "x": "uber_x",
    "99pop": "uber_x",
    "comfort": "uber_comfort",
    "uber comfort": "uber_comfort",
    "ubercomfort": "uber_comfort",
    "black": "uber_black",
    "uber black": "uber_black",
    "uberblack": "uber_black",
}

# ---------------- Financing estimates ---------------- #

# Average monthly rates for used-car financing, by share of the price paid
# up front (down payment plus trade-in). Estimates, not bank offers.
FINANCING_RATE_LOW_ENTRY_PERCENT = 40.0
FINANCING_RATE_MEDIUM_ENTRY_PERCENT = 20.0
FINANCING_RATE_LOW = 0.0159
FINANCING_RATE_MEDIUM = 0.0189
FINANCING_RATE_HIGH = 0.0219
FINANCING_RATE_ZERO_ENTRY = 0.0249

INSTALLMENT_OPTIONS = (12, 24, 36, 48, 60)
DISPLAYED_INSTALLMENTS = (36, 48, 60)
