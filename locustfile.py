from locust import HttpUser, task, between
import random

# Expects a seeded database (python -m storefront.seed) with at least one product.


class ShopperUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Register and log in a fresh client for this simulated shopper
        email = f"shopper_{random.randint(1, 1_000_000)}@example.com"
        password = "load-test"
        self.client.post(
            "/auth/register",
            json={"firstName": "Load", "lastName": "Test", "email": email, "password": password},
        )
        r = self.client.post("/auth/login", json={"email": email, "password": password})
        self.headers = {"Authorization": f"Bearer {r.json()['token']}"} if r.status_code == 200 else None

        r = self.client.get("/products", params={"limit": 20})
        self.product_ids = [p["id"] for p in r.json()["products"]] if r.status_code == 200 else []

    @task(3)
    def place_order(self):
        if not self.headers or not self.product_ids:
            return
        lines = [
            {"productId": pid, "quantity": random.randint(1, 3), "unitPrice": str(round(random.random() * 100, 2))}
            for pid in random.sample(self.product_ids, k=min(2, len(self.product_ids)))
        ]
        self.client.post("/orders", json={"lines": lines}, headers=self.headers)

    @task(2)
    def browse_products(self):
        self.client.get("/products", params={"search": random.choice(["bata", "kit", ""])})

    @task(1)
    def list_my_orders(self):
        if not self.headers:
            return
        self.client.get("/orders", headers=self.headers)
