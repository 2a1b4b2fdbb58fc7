import os
import random

from locust import HttpUser, task, between

SEARCH_TERMS = ["the", "history", "python", "a", "love"]
CATEGORIES = ["FICTION", "SCIENCE", "HISTORY", "TECHNOLOGY", ""]


class ReaderUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Optional: sign in so page routes behind the session guard are reachable
        self.book_ids = []
        email = os.getenv("LOCUST_EMAIL")
        password = os.getenv("LOCUST_PASSWORD")
        if email and password:
            self.client.post("/signin", data={"email": email, "password": password}, allow_redirects=False)

    @task(3)
    def browse_catalog(self):
        params = {"page": random.randint(1, 3), "limit": 12}
        category = random.choice(CATEGORIES)
        if category:
            params["category"] = category
        r = self.client.get("/books", params=params, name="/books")
        if r.status_code == 200:
            self.book_ids = [b["id"] for b in r.json().get("books", [])]

    @task(2)
    def search(self):
        self.client.get("/books", params={"search": random.choice(SEARCH_TERMS)}, name="/books?search")

    @task(1)
    def open_book(self):
        if not self.book_ids:
            return
        self.client.get(f"/books/{random.choice(self.book_ids)}", name="/books/[id]")
