from bookvault import crud


def test_delete_removes_row_and_file(client, admin_headers, storage, make_book):
    book = make_book()
    book_id, key = book.id, book.file_name
    r = client.delete("/admin/books", params={"id": book_id}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {"message": "Book deleted successfully", "fileDeleted": True}
    assert key not in storage.objects
    assert client.get(f"/books/{book_id}").status_code == 404


def test_delete_with_missing_object_still_removes_row(client, admin_headers, db_session, make_book):
    book_id = make_book(stored=False).id
    r = client.delete("/admin/books", params={"id": book_id}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["fileDeleted"] is False
    db_session.expire_all()
    assert crud.get_book(db_session, book_id) is None


def test_delete_storage_failure_is_best_effort(client, admin_headers, storage, db_session, make_book):
    book = make_book()
    book_id, key = book.id, book.file_name
    storage.fail_remove = True
    r = client.delete("/admin/books", params={"id": book_id}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["fileDeleted"] is False
    db_session.expire_all()
    assert crud.get_book(db_session, book_id) is None
    # the orphaned object is still there
    assert key in storage.objects


def test_delete_requires_id(client, admin_headers):
    r = client.delete("/admin/books", headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "Book ID required"


def test_delete_unknown_book(client, admin_headers):
    r = client.delete("/admin/books", params={"id": "nope"}, headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["error"] == "Book not found"
