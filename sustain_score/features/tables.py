"""
Static lookup tables for the feature encoder.

Everything here is read-only contract data: the model learns associations
against these exact tables, so editing any of them without retraining
invalidates the exported artifact.  Bump ``CATEGORY_TABLE_VERSION`` whenever
``CATEGORY_ENV_SCORES`` or ``FOOD_GROUP_TAGS`` change; the version is embedded
in every artifact and checked by ``sustain-score validate-sync``.

Tables
------
CATEGORY_ENV_SCORES  — category tag -> mean eco-score / 100 (n >= 20 products)
FOOD_GROUP_TAGS      — food group -> exact category tags (features 28-39)
PACKAGING_KEYWORDS   — material family -> substring keywords (features 4-8)
CERTIFICATION_TAGS   — certification family -> exact label tags (features 10-14)
ORIGIN_SUSTAINABILITY — origin keyword -> sustainability weight (features 16, 19)
"""

from __future__ import annotations

CATEGORY_TABLE_VERSION = "2024.3"

# ── Category scores ───────────────────────────────────────────────────────────
# Rebuild with `sustain-score build-category-scores`.

CATEGORY_ENV_SCORES: dict[str, float] = {
    "en:poultry-hams": 0.221, "en:yogurt-drinks": 0.223,
    "en:pork-and-its-products": 0.238, "en:prepared-meats": 0.252,
    "en:breaded-fish": 0.255, "en:hams": 0.257, "en:white-hams": 0.258,
    "en:tunas": 0.263, "en:dairy-drinks": 0.264, "en:meats": 0.275,
    "en:fish-preparations": 0.278, "en:chickens": 0.280,
    "en:chicken-and-its-products": 0.284, "en:poultries": 0.286,
    "en:sardines": 0.288, "en:canned-sardines": 0.288,
    "en:canned-fishes": 0.291, "en:almonds": 0.296,
    "en:fishes-and-their-products": 0.296, "en:fishes": 0.299,
    "en:seafood": 0.300, "en:fatty-fishes": 0.304,
    "en:breaded-products": 0.308, "en:nuts": 0.314,
    "en:meats-and-their-products": 0.317, "en:butters": 0.332,
    "en:dairy-spreads": 0.333, "en:milkfat": 0.335,
    "en:animal-fats": 0.343, "en:rices": 0.345,
    "en:milk-chocolates": 0.351, "en:chocolates": 0.360,
    "en:dark-chocolates": 0.362, "en:chocolate-cakes": 0.363,
    "en:cocoa-and-its-products": 0.381, "en:chocolate-candies": 0.396,
    "en:microwave-meals": 0.402, "en:extruded-flakes": 0.411,
    "en:hard-cheeses": 0.412, "en:filled-cereals": 0.414,
    "en:meals-with-meat": 0.420, "en:hazelnut-spreads": 0.421,
    "en:extruded-cereals": 0.423, "en:fruit-juices": 0.424,
    "en:chocolate-spreads": 0.426, "en:juices-and-nectars": 0.426,
    "en:peanut-butters": 0.427, "en:fruit-based-beverages": 0.430,
    "en:olive-oils": 0.431, "en:cheese-spreads": 0.432,
    "en:nut-butters": 0.433, "en:french-cheeses": 0.436,
    "en:cow-cheeses": 0.439, "en:pasteurized-cheeses": 0.439,
    "en:bars": 0.441, "en:extra-virgin-olive-oils": 0.442,
    "en:nuts-and-their-products": 0.444, "en:chocolate-biscuits": 0.446,
    "en:cereal-grains": 0.446, "en:spreadable-fats": 0.452,
    "en:cheeses": 0.455, "en:milks": 0.459, "en:fats": 0.458,
    "en:mayonnaises": 0.458, "en:vegetable-oils": 0.467,
    "en:wafers": 0.463, "en:filled-biscuits": 0.471,
    "en:confectioneries": 0.476, "en:pestos": 0.476,
    "en:cereal-bars": 0.481, "en:cakes": 0.489,
    "en:breakfast-cereals-rich-in-fibre": 0.490,
    "en:sweet-snacks": 0.496, "en:spreads": 0.509,
    "en:pasta-dishes": 0.515, "en:uht-milks": 0.518,
    "en:biscuits-and-cakes": 0.521, "en:biscuits": 0.521,
    "en:canned-foods": 0.525, "en:vegetable-fats": 0.525,
    "en:dairies": 0.527, "en:beverages": 0.532, "en:snacks": 0.536,
    "en:biscuits-and-crackers": 0.546, "en:fermented-milk-products": 0.551,
    "en:pasta-sauces": 0.555, "en:chocolate-cereals": 0.557,
    "en:fermented-foods": 0.558, "en:seeds": 0.565,
    "en:breakfast-cereals": 0.574, "en:breakfasts": 0.575,
    "en:sweet-spreads": 0.579, "en:plant-based-beverages": 0.583,
    "en:plant-based-spreads": 0.586, "en:frozen-foods": 0.587,
    "en:brioches": 0.591, "en:legumes-and-their-products": 0.594,
    "en:dried-products": 0.602, "en:fruits": 0.603,
    "en:meals": 0.606, "en:cereals-and-their-products": 0.610,
    "en:margarines": 0.610, "en:groceries": 0.619,
    "en:sweet-pastries-and-pies": 0.620, "en:viennoiseries": 0.620,
    "en:noodles": 0.624, "en:plant-based-foods-and-beverages": 0.629,
    "en:sauces": 0.629, "en:condiments": 0.633,
    "en:plant-based-foods": 0.639, "en:shortbread-cookies": 0.639,
    "en:yogurts": 0.651, "en:candies": 0.653,
    "en:unsweetened-beverages": 0.654, "en:cereals-and-potatoes": 0.657,
    "en:eggs": 0.658, "en:desserts": 0.672, "en:dairy-desserts": 0.673,
    "en:legumes": 0.676, "en:jams": 0.677, "en:pastas": 0.677,
    "en:fermented-dairy-desserts": 0.680, "en:creams": 0.683,
    "en:salty-snacks": 0.685, "en:meat-analogues": 0.686,
    "en:cereal-based-drinks": 0.688, "en:corn-chips": 0.689,
    "en:fruits-based-foods": 0.693, "en:sweeteners": 0.694,
    "en:meat-alternatives": 0.701, "en:crackers-appetizers": 0.702,
    "en:mustards": 0.702, "en:milk-substitutes": 0.717,
    "en:plant-based-milk-alternatives": 0.717, "en:appetizers": 0.719,
    "en:mueslis": 0.724, "en:dairy-substitutes": 0.726,
    "en:fruits-and-vegetables-based-foods": 0.727,
    "en:chips-and-fries": 0.732, "en:crisps": 0.735,
    "en:vegetables-based-foods": 0.738, "en:ice-creams": 0.741,
    "en:rolled-flakes": 0.742, "en:cereal-pastas": 0.745,
    "en:mueslis-with-fruits": 0.749, "en:dry-pastas": 0.749,
    "en:plain-fermented-dairy-desserts": 0.757, "en:plain-yogurts": 0.758,
    "en:potato-crisps": 0.759, "en:breads": 0.760,
    "en:skyrs": 0.762, "en:sliced-breads": 0.765,
    "en:tomato-sauces": 0.766, "en:soups": 0.767,
    "en:wholemeal-breads": 0.770, "en:ketchup": 0.770,
    "en:vegetables": 0.771, "en:canned-plant-based-foods": 0.780,
    "en:honeys": 0.783, "en:canned-vegetables": 0.784,
    "en:toasts": 0.785, "en:pulses": 0.785,
    "en:prepared-vegetables": 0.786, "en:teas": 0.790,
    "en:rusks": 0.795, "en:vegetable-soups": 0.796,
    "en:canned-legumes": 0.797, "en:lentils": 0.806,
    "en:non-dairy-desserts": 0.807, "en:non-dairy-yogurts": 0.807,
    "en:compotes": 0.835, "en:apple-compotes": 0.836,
}

# ── Food groups (exact tag membership) ────────────────────────────────────────

FOOD_GROUP_TAGS: dict[str, frozenset[str]] = {
    "meat": frozenset({
        "en:meats", "en:meats-and-their-products", "en:prepared-meats",
        "en:pork", "en:beef", "en:poultry", "en:poultries", "en:chicken",
        "en:chickens", "en:lamb", "en:sausages", "en:hams", "en:white-hams",
        "en:pork-and-its-products", "en:chicken-and-its-products",
        "en:cooked-poultries", "en:meat-preparations",
    }),
    "fish": frozenset({
        "en:fishes", "en:fishes-and-their-products", "en:seafood",
        "en:canned-fishes", "en:sardines", "en:tunas", "en:mackerels",
        "en:fatty-fishes", "en:fish-fillets", "en:fish-preparations",
        "en:smoked-fishes", "en:breaded-fish",
    }),
    "dairy": frozenset({
        "en:dairies", "en:cheeses", "en:milks", "en:yogurts",
        "en:butters", "en:creams", "en:fermented-milk-products", "en:dairy-desserts",
        "en:cow-cheeses", "en:fresh-cheeses", "en:hard-cheeses",
        "en:dairy-drinks", "en:dairy-spreads", "en:skyrs",
        "en:cheese-spreads", "en:plain-yogurts", "en:fruit-yogurts",
    }),
    "plant_based": frozenset({
        "en:plant-based-foods", "en:plant-based-foods-and-beverages",
        "en:plant-based-beverages", "en:plant-based-spreads",
        "en:plant-based-milk-alternatives", "en:milk-substitutes",
        "en:dairy-substitutes", "en:meat-alternatives", "en:meat-analogues",
        "en:non-dairy-desserts", "en:non-dairy-yogurts", "en:vegan-products",
    }),
    "fruit_veg": frozenset({
        "en:fruits", "en:vegetables", "en:vegetables-based-foods",
        "en:fruits-and-vegetables-based-foods", "en:fruits-based-foods",
        "en:prepared-vegetables", "en:canned-vegetables", "en:frozen-vegetables",
        "en:compotes", "en:vegetable-soups", "en:tomatoes",
        "en:legumes", "en:legumes-and-their-products", "en:pulses", "en:lentils",
        "en:chickpeas", "en:canned-legumes", "en:canned-plant-based-foods",
    }),
    "cereal": frozenset({
        "en:cereals-and-potatoes", "en:cereals-and-their-products",
        "en:breakfast-cereals", "en:breads", "en:pastas", "en:rices",
        "en:cereal-flakes", "en:mueslis", "en:cereal-bars",
        "en:sliced-breads", "en:wholemeal-breads", "en:dry-pastas",
        "en:noodles", "en:rolled-flakes", "en:toasts", "en:rusks",
        "en:extruded-cereals", "en:brioches", "en:cereal-grains",
    }),
    "beverage": frozenset({
        "en:beverages", "en:beverages-and-beverages-preparations",
        "en:fruit-juices", "en:juices-and-nectars", "en:fruit-based-beverages",
        "en:unsweetened-beverages", "en:sweetened-beverages", "en:teas",
        "en:hot-beverages", "en:instant-beverages", "en:alcoholic-beverages",
        "en:non-alcoholic-beverages", "en:tea-based-beverages", "en:iced-teas",
        "en:cereal-based-drinks", "en:oat-based-drinks",
    }),
    "fat_oil": frozenset({
        "en:fats", "en:vegetable-oils", "en:olive-oils",
        "en:vegetable-fats", "en:spreadable-fats", "en:animal-fats",
        "en:milkfat", "en:extra-virgin-olive-oils", "en:margarines",
        "en:light-margarines",
    }),
    "sweet": frozenset({
        "en:sweet-snacks", "en:chocolates", "en:chocolate-biscuits",
        "en:biscuits-and-cakes", "en:biscuits", "en:cakes", "en:confectioneries",
        "en:chocolate-candies", "en:candies", "en:cocoa-and-its-products",
        "en:chocolate-spreads", "en:hazelnut-spreads", "en:dark-chocolates",
        "en:milk-chocolates", "en:wafers", "en:filled-biscuits",
    }),
    "canned": frozenset({
        "en:canned-foods", "en:canned-fishes", "en:canned-vegetables",
        "en:canned-plant-based-foods", "en:canned-legumes", "en:canned-sardines",
        "en:canned-meals", "en:canned-tunas",
    }),
    "frozen": frozenset({
        "en:frozen-foods", "en:frozen-ready-made-meals",
        "en:frozen-vegetables", "en:frozen-desserts", "en:frozen-plant-based-foods",
        "en:frozen-fried-potatoes", "en:ice-creams", "en:ice-creams-and-sorbets",
    }),
    "ready_meal": frozenset({
        "en:meals", "en:meals-with-meat", "en:meals-with-chicken",
        "en:meals-with-fish", "en:microwave-meals", "en:pasta-dishes",
        "en:rice-dishes", "en:sandwiches", "en:pizzas", "en:combination-meals",
        "en:fresh-meals", "en:prepared-salads", "en:poultry-meals",
    }),
}

# ── Packaging ─────────────────────────────────────────────────────────────────

PACKAGING_KEYWORDS: dict[str, tuple[str, ...]] = {
    "plastic": (
        "plastic", "pet", "hdpe", "ldpe", "pp", "ps", "pvc", "polystyrene",
        "polyethylene", "polypropylene", "film", "wrap",
    ),
    "glass": ("glass", "verre", "jar"),
    "cardboard": ("cardboard", "paper", "carton", "tetra", "kraft", "papier"),
    "metal": ("metal", "aluminum", "aluminium", "tin", "steel", "can"),
    "compostable": ("compostable", "biodegradable", "bioplastic"),
}

# Distinct materials counted for the packaging continuity score (feature 9).
PACKAGING_MATERIALS: tuple[str, ...] = (
    "plastic", "glass", "cardboard", "paper", "metal", "aluminum", "tin", "wood", "cork",
)

# ── Certifications ────────────────────────────────────────────────────────────

CERTIFICATION_TAGS: dict[str, tuple[str, ...]] = {
    "organic": (
        "en:organic", "en:usda-organic", "en:eu-organic", "en:ab-agriculture-biologique",
        "en:bio", "en:demeter", "en:ecocert", "en:bioland", "en:naturland",
    ),
    "fair_trade": (
        "en:fair-trade", "en:fairtrade", "en:fairtrade-certified", "en:max-havelaar",
        "en:fairtrade-international",
    ),
    "rainforest_alliance": ("en:rainforest-alliance", "en:rainforest-alliance-certified"),
    "eu_ecolabel": (
        "en:eu-ecolabel", "en:european-ecolabel", "en:eu-organic", "en:ecolabel",
        "en:blue-angel",
    ),
    "msc": ("en:msc", "en:msc-certified", "en:marine-stewardship-council", "en:asc", "en:asc-certified"),
}

OTHER_CERTIFICATION_TAGS: tuple[str, ...] = (
    "en:fsc", "en:fsc-certified", "en:utz-certified", "en:utz", "en:carbon-neutral",
    "en:carbon-trust", "en:b-corp", "en:cradle-to-cradle", "en:non-gmo", "en:non-gmo-project",
)

# Every certification tag counted by the saturating aggregate (feature 15).
# Family lists overlap ("en:eu-organic"); an overlapping tag counts once per family.
ALL_CERTIFICATION_TAGS: tuple[str, ...] = (
    *(tag for family in CERTIFICATION_TAGS.values() for tag in family),
    *OTHER_CERTIFICATION_TAGS,
)

VEGAN_LABELS: tuple[str, ...] = ("en:vegan", "en:certified-vegan", "en:vegan-society")
VEGETARIAN_LABELS: tuple[str, ...] = ("en:vegetarian", "en:suitable-for-vegetarians")

# ── Origin / transport ────────────────────────────────────────────────────────
# Matched in insertion order; the first keyword found wins.

ORIGIN_SUSTAINABILITY: dict[str, float] = {
    "france": 0.82, "germany": 0.85, "italy": 0.78, "spain": 0.76,
    "netherlands": 0.84, "belgium": 0.82, "austria": 0.86, "switzerland": 0.88,
    "sweden": 0.90, "denmark": 0.88, "norway": 0.87, "finland": 0.88,
    "portugal": 0.75, "ireland": 0.78, "luxembourg": 0.83,
    "uk": 0.80, "united kingdom": 0.80,
    "usa": 0.70, "united states": 0.70, "canada": 0.72,
    "japan": 0.72, "south korea": 0.68, "australia": 0.70, "new zealand": 0.75,
    "brazil": 0.45, "india": 0.42, "mexico": 0.50, "argentina": 0.48,
    "thailand": 0.45, "vietnam": 0.40, "indonesia": 0.38,
    "china": 0.35, "bangladesh": 0.30,
    "european union": 0.80, "eu": 0.80, "europe": 0.78,
    "local": 0.95, "regional": 0.90, "national": 0.85, "imported": 0.40,
}

LOCAL_ORIGIN_KEYWORDS: tuple[str, ...] = ("local", "regional", "national", "domestic")

# (score, keywords) bands, checked top to bottom.
TRANSPORT_BANDS: tuple[tuple[float, tuple[str, ...]], ...] = (
    (0.95, ("local", "regional")),
    (0.85, ("national",)),
    (0.75, (
        "france", "germany", "italy", "spain", "netherlands", "belgium",
        "austria", "portugal", "ireland", "sweden", "denmark", "norway", "finland",
        "switzerland", "poland", "czech", "greece", "hungary", "romania",
    )),
    (0.60, ("uk", "united kingdom", "morocco", "tunisia", "turkey", "usa", "canada")),
    (0.30, (
        "china", "india", "brazil", "argentina", "thailand", "vietnam", "indonesia",
        "australia", "new zealand", "japan", "south korea",
    )),
)
