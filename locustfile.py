from locust import HttpUser, task, between
import random

SEARCH_TERMS = ["shoe", "lamp", "kettle", "widget"]


class ShopperUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Register and log in a shopper for this simulated client
        email = f"shopper_{random.randint(1, 1_000_000)}@example.com"
        r = self.client.post("/users/register", json={"name": "Shopper", "email": email, "password": "pw"})
        self.user_id = r.json()["data"]["id"] if r.status_code == 201 else None
        self.headers = {}
        if self.user_id:
            r = self.client.post("/users/login", json={"email": email, "password": "pw"})
            if r.status_code == 200:
                self.headers = {"Authorization": f"Bearer {r.json()['data']['token']}"}

    @task(3)
    def browse_products(self):
        self.client.get("/products")

    @task(2)
    def search(self):
        self.client.get("/search", params={"term": random.choice(SEARCH_TERMS)}, name="/search")

    @task(1)
    def place_order(self):
        if not self.user_id:
            return
        products = self.client.get("/products").json().get("data") or []
        if not products:
            return
        picked = random.sample(products, k=min(2, len(products)))
        self.client.post(
            "/orders",
            json={
                "orderItems": [{"product": p["id"], "quantity": random.randint(1, 3)} for p in picked],
                "shippingAddress1": "1 Main St",
                "city": "Colombo",
                "zip": "10600",
                "country": "Sri Lanka",
                "phone": "+94717185748",
                "user": self.user_id,
            },
            headers=self.headers,
        )
