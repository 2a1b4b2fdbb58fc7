from bookvault import models


def test_landing_renders(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "BookVault" in r.text
    assert "/signup" in r.text


def test_signin_page_renders(client):
    r = client.get("/signin")
    assert r.status_code == 200
    assert 'name="password"' in r.text


def test_dashboard_lists_and_searches(client, make_user, make_book, login):
    _, token = make_user(name="Rita")
    login(token)
    make_book(title="Moby Dick", author="Herman Melville")
    make_book(title="Dracula", author="Bram Stoker", category=models.Category.FANTASY)

    r = client.get("/dashboard")
    assert r.status_code == 200
    assert "Welcome back, Rita" in r.text
    assert "Moby Dick" in r.text and "Dracula" in r.text

    r = client.get("/dashboard", params={"search": "melville"})
    assert "Moby Dick" in r.text
    assert "Dracula" not in r.text

    r = client.get("/dashboard", params={"category": "FANTASY"})
    assert "Dracula" in r.text
    assert "Moby Dick" not in r.text

    r = client.get("/dashboard", params={"search": "nothing-matches"})
    assert "No books found" in r.text


def test_dashboard_rejects_overlong_search(client, make_user, login):
    _, token = make_user()
    login(token)
    r = client.get("/dashboard", params={"search": "x" * 201})
    assert r.status_code == 400
    assert "search" in r.json()["error"]


def test_dashboard_pagination_links(client, make_user, make_book, login):
    _, token = make_user()
    login(token)
    for i in range(13):
        make_book(title=f"Vol {i}")
    r = client.get("/dashboard")
    assert "Page 1 of 2" in r.text
    assert "page=2" in r.text
    r = client.get("/dashboard", params={"page": 2})
    assert "Vol 0" in r.text
    assert "Page 2 of 2" in r.text


def test_reader_embeds_pdf(client, make_user, make_book, login):
    _, token = make_user()
    login(token)
    book = make_book(title="Reader Test", description="A description")

    r = client.get(f"/book/{book.id}")
    assert r.status_code == 200
    assert f'{book.pdf_url}#page=1&amp;view=FitH' in r.text
    assert "1 / ?" in r.text
    assert "A description" in r.text

    r = client.get(f"/book/{book.id}", params={"page": 4})
    assert "#page=4&amp;" in r.text
    assert "4 / ?" in r.text
    assert f"/book/{book.id}?page=3" in r.text


def test_reader_unknown_book_redirects(client, make_user, login):
    _, token = make_user()
    login(token)
    r = client.get("/book/missing", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"


def test_admin_page_lists_books(client, make_user, make_book, login):
    _, token = make_user(email="admin@example.com", role=models.Role.ADMIN)
    login(token)
    make_book(title="Managed Book")
    r = client.get("/admin")
    assert r.status_code == 200
    assert "Upload New Book" in r.text
    assert "Managed Book" in r.text
    assert "Maximum file size: 50MB" in r.text
    assert "/static/admin.js" in r.text


def test_static_admin_script_served(client):
    r = client.get("/static/admin.js")
    assert r.status_code == 200
    assert "/admin/upload" in r.text
