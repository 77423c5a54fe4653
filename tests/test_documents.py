from lodge.services.storage import storage_service


def test_document_upload_download_and_delete(db_session, create_user, api_client, monkeypatch, tmp_path):
    monkeypatch.setattr(storage_service, "upload_root", tmp_path)
    admin = create_user(email="library@example.com", role_name="ADMIN")
    client = api_client(admin)

    response = client.post(
        "/documents/",
        data={"title": "Regimento Interno", "category": "Regimentos"},
        files={"file": ("regimento.pdf", b"%PDF-1.4 test", "application/pdf")},
    )
    assert response.status_code == 201
    document = response.json()
    assert document["file_size"] == len(b"%PDF-1.4 test")
    assert document["file_path"].startswith("documents/")

    download = client.get(f"/documents/{document['id']}/download")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 test"
    assert 'filename="Regimento Interno.pdf"' in download.headers["content-disposition"]

    assert client.delete(f"/documents/{document['id']}").status_code == 204
    assert not (tmp_path / document["file_path"]).exists()


def test_empty_document_is_rejected(db_session, create_user, api_client):
    admin = create_user(email="empty-doc@example.com", role_name="ADMIN")
    client = api_client(admin)
    response = client.post(
        "/documents/",
        data={"title": "Vazio", "category": "Outros"},
        files={"file": ("vazio.txt", b"", "text/plain")},
    )
    assert response.status_code == 400


def test_document_upload_requires_library_office(db_session, create_user, api_client):
    member = create_user(email="reader@example.com", role_name="MEMBER")
    client = api_client(member)
    response = client.post(
        "/documents/",
        data={"title": "Texto", "category": "Outros"},
        files={"file": ("texto.txt", b"conteudo", "text/plain")},
    )
    assert response.status_code == 403
    assert client.get("/documents/").status_code == 200
