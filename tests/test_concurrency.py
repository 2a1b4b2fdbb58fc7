import time

import anyio
import httpx

from bookvault.main import app
from bookvault.storage import get_storage

from conftest import FakeStorage


class SlowStorage(FakeStorage):
    def remove(self, key):
        time.sleep(1.0)
        return super().remove(key)


def test_slow_storage_does_not_stall_other_requests(client, admin_headers, make_book):
    storage = SlowStorage()
    app.dependency_overrides[get_storage] = lambda: storage
    book_id = make_book().id
    timings = {}

    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            async def delete():
                r = await ac.delete("/admin/books", params={"id": book_id}, headers=admin_headers)
                timings["delete_status"] = r.status_code

            async def health():
                await anyio.sleep(0.2)
                started = time.perf_counter()
                r = await ac.get("/health")
                timings["health"] = time.perf_counter() - started
                timings["health_status"] = r.status_code

            async with anyio.create_task_group() as tg:
                tg.start_soon(delete)
                tg.start_soon(health)

    anyio.run(scenario)
    assert timings["delete_status"] == 200
    assert timings["health_status"] == 200
    assert timings["health"] < 0.5
