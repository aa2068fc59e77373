import pytest

from plan_engine.models import Candidate, Ingredient, SlotType


def _candidate(
    name: str,
    calories: float = 500,
    ingredients: tuple[str, ...] = (),
    slot_types: tuple[SlotType, ...] = (SlotType.LUNCH,),
    dietary_tags: tuple[str, ...] = (),
    protein_g: float = 30,
    carbs_g: float = 50,
    fat_g: float = 15,
    id: str | None = None,
) -> Candidate:
    return Candidate(
        id=id or name.lower().replace(" ", "-"),
        name=name,
        calories=calories,
        protein_g=protein_g,
        carbs_g=carbs_g,
        fat_g=fat_g,
        slot_types=slot_types,
        dietary_tags=dietary_tags,
        ingredients=tuple(Ingredient(name=i, amount=1, unit="cup") for i in ingredients),
    )


@pytest.fixture
def make_candidate():
    """Factory for valid candidates with sensible defaults."""
    return _candidate


@pytest.fixture
def sample_candidates() -> list[Candidate]:
    """Small pool covering every slot type for scheduler tests."""
    B, L, D, S = SlotType.BREAKFAST, SlotType.LUNCH, SlotType.DINNER, SlotType.SNACK
    return [
        _candidate("Overnight Oats", 400, ("oats", "milk", "blueberries"), (B,),
                   ("vegetarian",)),
        _candidate("Veggie Omelette", 350, ("eggs", "spinach", "onion"), (B,),
                   ("vegetarian", "gluten-free")),
        _candidate("Chicken Salad", 550, ("chicken", "lettuce", "tomato"), (L,),
                   ("gluten-free",)),
        _candidate("Lentil Soup", 450, ("lentils", "onion", "carrot"), (L, D),
                   ("vegan", "vegetarian")),
        _candidate("Salmon Rice Bowl", 650, ("salmon", "rice", "spinach"), (D,),
                   ("gluten-free",)),
        _candidate("Beef Stew", 700, ("beef", "carrot", "onion", "potato"), (D,)),
        _candidate("Greek Yogurt", 200, ("yogurt", "honey"), (S,), ("vegetarian",)),
    ]


@pytest.fixture
def pool_fetcher(sample_candidates):
    """fetch_candidates backed by the sample pool."""
    from plan_engine.search import filter_candidates

    def fetch(slot_type, filters):
        filters.slot_type = slot_type
        return filter_candidates(sample_candidates, filters).items

    return fetch
