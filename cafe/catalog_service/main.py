# catalog_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Catalog Service (dev mock)")


MENU_ITEMS = {
    1: {"id": 1, "name": "Flat White", "price": 3.20, "available": True},
    2: {"id": 2, "name": "Full English Breakfast", "price": 9.50, "available": True},
    3: {"id": 3, "name": "Avocado Toast", "price": 7.25, "available": True},
    4: {"id": 4, "name": "Victoria Sponge", "price": 4.50, "available": True},
    5: {"id": 5, "name": "Seasonal Soup", "price": 6.00, "available": False},
}

@app.get("/menu-items/{menu_item_id}")
def get_menu_item(menu_item_id: int):
    item = MENU_ITEMS.get(menu_item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item
