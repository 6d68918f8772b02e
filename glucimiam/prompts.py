"""Prompts for the vision models."""

from datetime import datetime
from typing import Dict, List, Optional

IDENTIFY_PROMPT = """
Tu es un expert en nutrition qui aide une personne diabétique insulino-dépendante à compter ses glucides.

Les {image_count} photo(s) jointes montrent LE MÊME repas sous différents angles.
Sur les photos, un index (doigt) sert d'étalon : sa longueur réelle est de {finger_length_mm} mm.
Contexte : {meal_time}.{user_context_line}

1) Liste chaque aliment DISTINCT visible dans l'assiette (sauces et accompagnements compris).
2) Un aliment vu sur plusieurs photos ne doit apparaître qu'UNE seule fois.
3) Donne des noms courts, en français.

Réponds UNIQUEMENT en JSON valide, exactement dans ce format :

{{"foods": ["nom aliment 1", "nom aliment 2"]}}

Si les photos sont floues ou ne montrent pas de nourriture, réponds :
{{"error": "description du problème", "needsRetake": true}}

⚠️ Aucun texte hors du JSON.
"""

QUANTIFY_PROMPT = """
Tu es un expert en nutrition et en comptage des glucides pour les diabétiques insulino-dépendants.

Les {image_count} photo(s) jointes montrent LE MÊME repas sous différents angles.
Un index de {finger_length_mm} mm de long est visible : utilise-le comme étalon pour estimer dimensions et volumes.
Contexte : {meal_time}.{user_context_line}

Aliments identifiés :
{food_list}

Valeurs de référence (glucides pour 100 g) à utiliser en priorité :
{reference_lines}

Pour CHAQUE aliment identifié, et exactement une entrée par aliment :
- estime le poids visible en grammes
- donne les glucides pour 100 g (la valeur de référence si elle existe)
- calcule totalCarbsG = estimatedWeightG × carbsPer100g / 100

Réponds UNIQUEMENT en JSON valide, exactement dans ce format :

{{"foods": [
  {{"foodName": "nom", "estimatedWeightG": 0, "carbsPer100g": 0, "totalCarbsG": 0, "confidence": 0.0, "reasoning": "explication courte"}}
]}}

⚠️ Toutes les valeurs numériques en nombres, pas en texte.
⚠️ Aucun texte hors du JSON.
"""

SINGLE_FOOD_PROMPT = """
Tu es un expert en nutrition et en comptage des glucides pour les diabétiques insulino-dépendants.

Analyse ce plat/cette collation ({image_count} photo(s) du même repas).
Sur la photo, tu verras un doigt (index) qui sert d'étalon de mesure.
La longueur réelle de cet index est de {finger_length_mm} mm.
Utilise cet étalon pour estimer les dimensions et volumes des aliments visibles.
Contexte : {meal_time}.{user_context_line}

Réponds UNIQUEMENT en JSON valide avec ce format exact :

{{
  "foodName": "nom du plat/aliment en français",
  "estimatedWeightG": 0,
  "carbsPer100g": 0,
  "totalCarbsG": 0,
  "confidence": 0.0,
  "reasoning": "explication courte de ton estimation"
}}

Si tu ne peux pas identifier l'aliment ou si la photo est floue/insuffisante, réponds :
{{"error": "description du problème", "needsRetake": true}}
"""

# (first hour, last hour, label); hours outside every band are late night
MEAL_TIME_BANDS = (
    (5, 10, "petit-déjeuner"),
    (11, 14, "déjeuner"),
    (15, 17, "goûter / collation"),
    (18, 21, "dîner"),
)
LATE_NIGHT = "collation de fin de soirée / nuit"


def meal_time_label(now: Optional[datetime] = None) -> str:
    hour = (now or datetime.now()).hour
    for first, last, label in MEAL_TIME_BANDS:
        if first <= hour <= last:
            return label
    return LATE_NIGHT


def _context_line(user_context: Optional[str]) -> str:
    if not user_context or not user_context.strip():
        return ""
    return f'\nL\'utilisateur a ajouté ce contexte pour t\'aider : "{user_context.strip()}"'


def _common_fields(
    image_count: int, finger_length_mm: float, user_context: Optional[str], now: Optional[datetime]
) -> Dict[str, str]:
    return {
        "image_count": str(image_count),
        "finger_length_mm": f"{finger_length_mm:g}",
        "meal_time": f"moment du repas : {meal_time_label(now)}",
        "user_context_line": _context_line(user_context),
    }


def build_identify_prompt(
    image_count: int,
    finger_length_mm: float,
    user_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    return IDENTIFY_PROMPT.format(
        **_common_fields(image_count, finger_length_mm, user_context, now)
    ).strip()


def build_quantify_prompt(
    food_names: List[str],
    references: Dict[str, float],
    image_count: int,
    finger_length_mm: float,
    user_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """``references`` maps identified names to authoritative carbs/100g."""
    food_list = "\n".join(f"- {name}" for name in food_names)
    reference_lines = "\n".join(
        f"- {name} : {carbs:g} g/100g" for name, carbs in references.items()
    ) or "- (aucune, estime toi-même)"
    return QUANTIFY_PROMPT.format(
        food_list=food_list,
        reference_lines=reference_lines,
        **_common_fields(image_count, finger_length_mm, user_context, now),
    ).strip()


def build_single_food_prompt(
    image_count: int,
    finger_length_mm: float,
    user_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    return SINGLE_FOOD_PROMPT.format(
        **_common_fields(image_count, finger_length_mm, user_context, now)
    ).strip()

