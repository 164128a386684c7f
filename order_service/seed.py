"""Default catalogue and demo account.

Run with ``python -m order_service.seed``. Existing rows (matched by name or
email) are left alone, so seeding twice is harmless.
"""

import structlog
from sqlalchemy import select

from .database import SessionLocal, create_tables
from .logging_config import configure_logging
from .models import Category, MenuItem, User

logger = structlog.get_logger(__name__)

DEFAULT_USER = {"name": "John Doe", "email": "john@example.com"}

CATEGORIES = [
    ("salad", "salad.png"),
    ("rolls", "rolls.png"),
    ("deserts", "deserts.png"),
    ("sandwich", "sandwich.png"),
    ("cake", "cake.png"),
    ("pure veg", "pure_veg.png"),
    ("pasta", "pasta.png"),
    ("noodles", "noodles.png"),
]

# name, price, image, category, customizations, nutrition
MENU_ITEMS = [
    ("Attieke", 10, "attieke.jpg", "salad", "Extra Sauce,No Onions", "250 cal"),
    ("Banane Plantain", 8, "banane-plantain.jpeg", "pure veg", "Spicy Sauce,No Sauce", "200 cal"),
    ("Foufou Sauce Kokotcha", 12, "foufou_sauce_kokotcha.jpg", "noodles", "Extra Meat,Vegetarian", "300 cal"),
    ("Pizza Royale", 15, "pizza-royale.jpg", "sandwich", "Extra Cheese,No Olives", "450 cal"),
    ("Poulet Roti Frites", 14, "poulet-roti-frites.jpeg", "rolls", "Spicy Sauce,No Sauce", "500 cal"),
    ("Riz Carbonara Champignon", 13, "riz_carbonara_champignon.jpg", "pasta", "No Cream,Extra Mushrooms", "400 cal"),
    ("Riz Sauce Nkumu Ofula", 11, "riz_sauce_nkumu_ofula.webp", "deserts", "Extra Sauce,No Spice", "350 cal"),
    ("Spaghetti Bolognaise", 12, "spaghetti-bolognaise.jpeg", "cake", "No Cheese,Extra Meat", "300 cal"),
]


def seed_data(db):
    created = {"users": 0, "categories": 0, "menu_items": 0}

    if db.execute(select(User).where(User.email == DEFAULT_USER["email"])).first() is None:
        db.add(User(**DEFAULT_USER))
        created["users"] += 1

    categories = {c.name: c for c in db.execute(select(Category)).scalars()}
    for name, image_url in CATEGORIES:
        if name not in categories:
            categories[name] = Category(name=name, image_url=image_url)
            db.add(categories[name])
            created["categories"] += 1
    db.flush()

    existing = set(db.execute(select(MenuItem.name)).scalars())
    for name, price, image_url, category, customizations, nutrition in MENU_ITEMS:
        if name in existing:
            continue
        db.add(
            MenuItem(
                name=name,
                price=price,
                image_url=image_url,
                category_id=categories[category].category_id,
                customizations=customizations,
                nutrition=nutrition,
            )
        )
        created["menu_items"] += 1

    db.commit()
    logger.info("Seed data inserted", **created)
    return created


def main():
    configure_logging()
    create_tables()
    db = SessionLocal()
    try:
        seed_data(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
