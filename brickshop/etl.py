import time
from collections import defaultdict
from datetime import datetime
from pathlib import Path

import psycopg2
from psycopg2.extras import RealDictCursor

from brickshop import config
from brickshop.db import GraphStore
from brickshop.errors import BrickshopError

RATING_MIN, RATING_MAX = 1, 5


# ---------- Helpers ----------
def run_cypher_file(session, filepath: Path):
    if not filepath.exists():
        return
    for stmt in split_cypher(filepath.read_text(encoding="utf-8")):
        session.run(stmt)


def split_cypher(text: str):
    """Statements of a .cypher file, without Browser (':...') lines or comments."""
    cleaned_lines = []
    for line in text.splitlines():
        l = line.strip()
        if not l or l.startswith("//") or l.startswith(":"):
            continue
        cleaned_lines.append(line)
    cleaned = "\n".join(cleaned_lines)
    return [s.strip() for s in cleaned.split(";") if s.strip()]


def chunk(iterable, size: int):
    """Découpe un itérable en lots de taille 'size' (pour batch insert)."""
    batch = []
    for item in iterable:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def wait_for_postgres(timeout=120):
    """Attendre que Postgres accepte les connexions."""
    start = time.time()
    while True:
        try:
            with psycopg2.connect(**config.PG) as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1;")
            print("Postgres is ready.")
            return
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout:
                raise RuntimeError(f"Postgres not ready after {timeout}s: {e}")
            time.sleep(2)


def wait_for_neo4j(store: GraphStore, timeout=120):
    """Attendre que Neo4j accepte les connexions Bolt."""
    start = time.time()
    while True:
        try:
            store.ping()
            print("Neo4j is ready.")
            return
        except BrickshopError as e:
            if time.time() - start > timeout:
                raise RuntimeError(f"Neo4j not ready after {timeout}s: {e}")
            time.sleep(2)


# ---------- Transformations ----------
def to_epoch_ms(value) -> int:
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    return int(value)


def clamp_rating(value) -> float:
    return float(min(max(float(value), RATING_MIN), RATING_MAX))


def merge_order_items(order_items):
    """Une ligne CONTAINS par (commande, produit) ; les quantités sont additionnées."""
    totals = defaultdict(int)
    for item in order_items:
        totals[(item["order_id"], item["product_id"])] += item.get("qty") or 1
    return [
        {"order_id": order_id, "product_id": product_id, "quantity": qty}
        for (order_id, product_id), qty in totals.items()
    ]


def transform(tables):
    return {
        "categories": [{"id": c["id"], "name": c["name"]} for c in tables["categories"]],
        "products": [
            {
                "id": p["id"],
                "name": p["name"],
                "price": float(p["price"]),
                "elements": int(p["elements"] or 0),
                "minifigures": int(p["minifigures"] or 0),
                "image_url": p["image_url"] or "",
                "category_id": p["category_id"],
            }
            for p in tables["products"]
        ],
        "users": [{"id": u["id"], "name": u["name"], "email": u["email"]} for u in tables["users"]],
        "orders": [
            {"id": o["id"], "user_id": o["user_id"], "time": to_epoch_ms(o["created_at"])}
            for o in tables["orders"]
        ],
        "order_items": merge_order_items(tables["order_items"]),
        "ratings": [
            {"user_id": r["user_id"], "product_id": r["product_id"], "value": clamp_rating(r["value"])}
            for r in tables["ratings"]
        ],
    }


# ---------- Chargement ----------
LOAD_STEPS = [
    ("categories", 100, """
        UNWIND $rows AS row
        MERGE (c:Category {sourceId: row.id})
        SET c.name = row.name
    """),
    # product and BELONGS_TO in the same statement, products without a
    # known category are skipped
    ("products", 100, """
        UNWIND $rows AS row
        MATCH (c:Category {sourceId: row.category_id})
        MERGE (p:Product {sourceId: row.id})
        SET p.name = row.name, p.price = row.price, p.elements = row.elements,
            p.minifigures = row.minifigures, p.imageUrl = row.image_url
        MERGE (p)-[:BELONGS_TO]->(c)
    """),
    ("users", 200, """
        UNWIND $rows AS row
        MERGE (u:User {sourceId: row.id})
        SET u.name = row.name, u.email = row.email
    """),
    ("orders", 200, """
        UNWIND $rows AS row
        MATCH (u:User {sourceId: row.user_id})
        MERGE (o:Order {sourceId: row.id})
        SET o.time = row.time
        MERGE (u)-[pl:PLACED]->(o)
        SET pl.time = row.time
    """),
    ("order_items", 500, """
        UNWIND $rows AS row
        MATCH (o:Order {sourceId: row.order_id})
        MATCH (p:Product {sourceId: row.product_id})
        MERGE (o)-[r:CONTAINS]->(p)
        SET r.quantity = row.quantity
    """),
    ("ratings", 500, """
        UNWIND $rows AS row
        MATCH (u:User {sourceId: row.user_id})
        MATCH (p:Product {sourceId: row.product_id})
        MERGE (u)-[r:RATES]->(p)
        SET r.value = row.value
    """),
]


def extract():
    print("ETL: reading from Postgres...")
    with psycopg2.connect(**config.PG) as conn:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            tables = {}
            for table, query in [
                ("categories", "SELECT id, name FROM categories;"),
                ("products", "SELECT id, name, price, elements, minifigures, image_url, category_id FROM products;"),
                ("users", "SELECT id, name, email FROM users;"),
                ("orders", "SELECT id, user_id, created_at FROM orders;"),
                ("order_items", "SELECT order_id, product_id, qty FROM order_items;"),
                ("ratings", "SELECT user_id, product_id, value FROM ratings;"),
            ]:
                cur.execute(query)
                tables[table] = cur.fetchall()
    return tables


def load(store: GraphStore, data, schema: Path = Path(__file__).with_name("queries.cypher")):
    print("ETL: writing to Neo4j...")
    with store.session() as s:
        run_cypher_file(s, schema)
        for name, size, query in LOAD_STEPS:
            for batch in chunk(data[name], size):
                s.run(query, rows=batch).consume()
            print(f"ETL: {name} loaded ({len(data[name])})")
    return {name: len(data[name]) for name, _, _ in LOAD_STEPS}


# ---------- ETL principal ----------
def etl(store: GraphStore = None):
    """
    ETL principal : Postgres -> Neo4j.

    Étapes :
      1) Attend Postgres & Neo4j
      2) Exécute le fichier Cypher de schéma (queries.cypher)
      3) Extrait les tables de Postgres
      4) Transforme (horodatages en ms, quantités fusionnées, notes bornées)
      5) Charge dans Neo4j : User, Product, Order, Category + relations
    """
    owned = store is None
    store = store or GraphStore()
    try:
        print("ETL: waiting for dependencies...")
        wait_for_postgres()
        wait_for_neo4j(store)
        stats = load(store, transform(extract()))
    finally:
        if owned:
            store.close()
    print("ETL: done.")
    return stats


def main():
    config.configure_logging()
    print(etl())


if __name__ == "__main__":
    main()
