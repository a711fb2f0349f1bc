"""
German display labels shared by the activity feed and the report export.
"""

from typing import Union

from sidekick.core.models import CheckinCategory, CheckinValues, MealType

MEAL_TYPE_LABELS = {
    MealType.FRUEHSTUECK: "Fruehstueck",
    MealType.BIO_SNACK: "Snack",
    MealType.MITTAGESSEN: "Mittagessen",
    MealType.ABENDESSEN: "Abendessen",
}

CHECKIN_LABELS = {
    CheckinCategory.STIMMUNG: "Stimmung",
    CheckinCategory.FOKUS: "Fokus",
    CheckinCategory.REIZBARKEIT: "Reizbarkeit",
    CheckinCategory.UNRUHE: "Unruhe",
}


def format_meal_type(meal_type: Union[MealType, str]) -> str:
    try:
        return MEAL_TYPE_LABELS[MealType(meal_type)]
    except ValueError:
        return str(meal_type)


def format_checkin_key(category: Union[CheckinCategory, str]) -> str:
    try:
        return CHECKIN_LABELS[CheckinCategory(category)]
    except ValueError:
        return str(category)


def format_food(with_food: bool) -> str:
    return "mit Nahrung" if with_food else "ohne Nahrung"


def format_dose(dose_mg: int, with_food: bool) -> str:
    return f"{dose_mg} mg, {format_food(with_food)}"


def format_checkin_values(values: CheckinValues, separator: str = ": ") -> str:
    """'Stimmung: 4/5, Fokus: 3/5' (feed) or 'Stimmung 4/5, ...' (export)."""
    return ", ".join(
        f"{format_checkin_key(category)}{separator}{value}/5"
        for category, value in values.present()
    )
