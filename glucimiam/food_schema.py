"""
Built-in curated carbohydrate table.

Values are carbohydrates in grams per 100 g of the food as eaten (cooked
where relevant), rounded from the French CIQUAL composition tables.
"""

CURATED_FOODS = {
    # Féculents (cuits)
    "riz blanc cuit": {"carbs": 28.0, "category": "féculents"},
    "riz complet cuit": {"carbs": 23.0, "category": "féculents"},
    "pâtes cuites": {"carbs": 25.0, "category": "féculents"},
    "semoule cuite": {"carbs": 23.0, "category": "féculents"},
    "boulgour cuit": {"carbs": 19.0, "category": "féculents"},
    "quinoa cuit": {"carbs": 18.0, "category": "féculents"},
    "lentilles cuites": {"carbs": 14.0, "category": "féculents"},
    "pois chiches cuits": {"carbs": 16.0, "category": "féculents"},
    "haricots rouges cuits": {"carbs": 13.0, "category": "féculents"},
    "pomme de terre cuite": {"carbs": 17.0, "category": "féculents"},
    "purée de pommes de terre": {"carbs": 13.0, "category": "féculents"},
    "frites": {"carbs": 33.0, "category": "féculents"},
    "patate douce cuite": {"carbs": 18.0, "category": "féculents"},
    "maïs doux": {"carbs": 17.0, "category": "féculents"},

    # Pains & viennoiseries
    "baguette": {"carbs": 56.0, "category": "pains"},
    "pain complet": {"carbs": 43.0, "category": "pains"},
    "pain de mie": {"carbs": 49.0, "category": "pains"},
    "biscotte": {"carbs": 74.0, "category": "pains"},
    "croissant": {"carbs": 45.0, "category": "viennoiseries"},
    "pain au chocolat": {"carbs": 46.0, "category": "viennoiseries"},

    # Fruits
    "pomme": {"carbs": 11.6, "category": "fruits"},
    "banane": {"carbs": 20.0, "category": "fruits"},
    "orange": {"carbs": 8.3, "category": "fruits"},
    "poire": {"carbs": 11.0, "category": "fruits"},
    "raisin": {"carbs": 16.0, "category": "fruits"},
    "fraise": {"carbs": 6.0, "category": "fruits"},
    "kiwi": {"carbs": 10.0, "category": "fruits"},
    "ananas": {"carbs": 11.0, "category": "fruits"},
    "mangue": {"carbs": 13.0, "category": "fruits"},
    "compote de pommes": {"carbs": 17.0, "category": "fruits"},

    # Légumes
    "carotte": {"carbs": 7.0, "category": "légumes"},
    "tomate": {"carbs": 2.8, "category": "légumes"},
    "haricots verts": {"carbs": 4.0, "category": "légumes"},
    "courgette": {"carbs": 2.0, "category": "légumes"},
    "brocoli": {"carbs": 2.2, "category": "légumes"},
    "salade verte": {"carbs": 1.5, "category": "légumes"},
    "petits pois": {"carbs": 8.0, "category": "légumes"},

    # Produits laitiers
    "lait demi-écrémé": {"carbs": 4.8, "category": "laitiers"},
    "yaourt nature": {"carbs": 5.0, "category": "laitiers"},
    "yaourt aux fruits": {"carbs": 15.0, "category": "laitiers"},
    "fromage blanc": {"carbs": 4.0, "category": "laitiers"},

    # Protéines
    "poulet": {"carbs": 0.0, "category": "protéines"},
    "steak haché": {"carbs": 0.0, "category": "protéines"},
    "saumon": {"carbs": 0.0, "category": "protéines"},
    "oeuf": {"carbs": 0.6, "category": "protéines"},
    "jambon": {"carbs": 1.0, "category": "protéines"},

    # Plats composés
    "pizza": {"carbs": 28.0, "category": "plats"},
    "lasagnes": {"carbs": 13.0, "category": "plats"},
    "quiche lorraine": {"carbs": 18.0, "category": "plats"},
    "hamburger": {"carbs": 27.0, "category": "plats"},

    # Produits sucrés
    "chocolat au lait": {"carbs": 56.0, "category": "sucrés"},
    "gâteau au chocolat": {"carbs": 50.0, "category": "sucrés"},
    "tarte aux pommes": {"carbs": 33.0, "category": "sucrés"},
    "crêpe": {"carbs": 30.0, "category": "sucrés"},
    "biscuit sec": {"carbs": 72.0, "category": "sucrés"},
    "pâte à tartiner": {"carbs": 57.0, "category": "sucrés"},
    "glace vanille": {"carbs": 25.0, "category": "sucrés"},
    "confiture": {"carbs": 60.0, "category": "sucrés"},
    "miel": {"carbs": 81.0, "category": "sucrés"},

    # Boissons
    "jus d'orange": {"carbs": 9.0, "category": "boissons"},
    "soda cola": {"carbs": 10.6, "category": "boissons"},
}
