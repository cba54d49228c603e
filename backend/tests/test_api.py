"""
Light Management - API E2E (TestClient)
Tests: auth, CRUD, import/export XML, stock via statut, droits par rôle.
Run: cd backend && pytest tests/test_api.py -v
"""

import pytest

TOTAUX = {"total_ht": 70.0, "total_tva": 14.0, "total_ttc": 84.0}


def _xml_file(content, filename="data.xml", mime="application/xml"):
    return {"file": (filename, content.encode("utf-8"), mime)}


def _create_product(c, headers, name="Lamp", stock=5, price=10.0):
    r = c.post("/api/products", json={"name": name, "price": price, "stock": stock}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def _create_client(c, headers, reference="CLI-2024-001"):
    r = c.post("/api/clients", json={
        "reference": reference, "type": "PME", "raison_sociale": "Lumière SARL"
    }, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def _commande(reference, client_id, produit_id, quantite, statut="EN_ATTENTE"):
    return {
        "reference": reference,
        "client_id": client_id,
        "statut": statut,
        "lignes": [{
            "produit_id": produit_id, "quantite": quantite,
            "prix_unitaire_ht": 10.0, "total_ht": 10.0 * quantite
        }],
        "totaux": TOTAUX,
    }


def _stock(c, produit_id):
    products = c.get("/api/products").json()
    return next(p["stock"] for p in products if p["id"] == produit_id)


# ═══════════════════════════════════════════════════════════════
# 1. AUTH
# ═══════════════════════════════════════════════════════════════

class TestAuth:
    def test_login_success(self, app_client, admin_headers):
        r = app_client.post("/api/auth/login", json={"username": "admin", "password": "Secret123!"})
        assert r.status_code == 200
        data = r.json()
        assert "token" in data
        assert data["user"]["role"] == "admin"
        assert data["user"]["permissions"]["users.manage"] is True

    def test_login_wrong_password(self, app_client, admin_headers):
        r = app_client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid username or password"

    def test_register_duplicate(self, app_client, admin_headers):
        r = app_client.post("/api/auth/register", json={"username": "admin", "password": "x"})
        assert r.status_code == 400
        assert r.json()["detail"] == "User already exists"

    def test_me_hides_password(self, app_client, user_headers):
        r = app_client.get("/api/auth/me", headers=user_headers)
        assert r.status_code == 200
        assert r.json()["username"] == "operator"
        assert "password" not in r.json()

    def test_logout_ends_session(self, app_client, user_headers):
        assert app_client.post("/api/auth/logout", headers=user_headers).status_code == 200
        assert app_client.get("/api/auth/me", headers=user_headers).status_code == 401

    def test_no_token(self, app_client):
        assert app_client.get("/api/clients").status_code == 401


# ═══════════════════════════════════════════════════════════════
# 2. PRODUITS
# ═══════════════════════════════════════════════════════════════

class TestProducts:
    def test_public_listing(self, app_client, user_headers):
        _create_product(app_client, user_headers)
        r = app_client.get("/api/products")
        assert r.status_code == 200
        assert [p["name"] for p in r.json()] == ["Lamp"]

    def test_crud(self, app_client, user_headers):
        product = _create_product(app_client, user_headers)
        r = app_client.put(f"/api/products/{product['id']}", json={"price": 12.5}, headers=user_headers)
        assert r.status_code == 200
        assert r.json()["price"] == 12.5
        assert r.json()["stock"] == 5

        r = app_client.delete(f"/api/products/{product['id']}", headers=user_headers)
        assert r.status_code == 200
        assert app_client.get("/api/products").json() == []

    def test_duplicate_name(self, app_client, user_headers):
        _create_product(app_client, user_headers)
        r = app_client.post("/api/products", json={"name": "Lamp", "price": 1}, headers=user_headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Product already exists"

    def test_negative_stock_rejected(self, app_client, user_headers):
        r = app_client.post("/api/products", json={"name": "X", "price": 1, "stock": -1}, headers=user_headers)
        assert r.status_code == 422

    def test_import_report(self, app_client, user_headers):
        _create_product(app_client, user_headers)
        xml = (
            "<products>"
            "<product><name>Lamp</name><price>1</price></product>"
            "<product><name>Desk</name><price>99.9</price><stock>2</stock></product>"
            "</products>"
        )
        r = app_client.post("/api/products/import", files=_xml_file(xml), headers=user_headers)
        assert r.status_code == 201
        data = r.json()
        assert data["summary"] == {"total": 2, "success": 1, "failed": 1}
        assert data["results"][0]["reason"] == "Product already exists"

    def test_import_wrong_root(self, app_client, user_headers):
        r = app_client.post(
            "/api/products/import",
            files=_xml_file("<users><user/></users>"),
            headers=user_headers
        )
        assert r.status_code == 400
        assert r.json() == {"detail": "You're trying to import wrong elements to the database."}

    def test_import_rejects_non_xml(self, app_client, user_headers):
        r = app_client.post(
            "/api/products/import",
            files=_xml_file("name,price", filename="products.csv", mime="text/csv"),
            headers=user_headers
        )
        assert r.status_code == 400
        assert r.json()["detail"] == "Only XML files are allowed!"

    def test_export(self, app_client, user_headers):
        _create_product(app_client, user_headers)
        r = app_client.get("/api/products/export", headers=user_headers)
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/xml")
        assert r.headers["content-disposition"] == 'attachment; filename="products.xml"'
        assert "<name>Lamp</name>" in r.text

    def test_export_validation_failure(self, app_client, user_headers, monkeypatch, tmp_path):
        (tmp_path / "products.xsd").write_text(
            '<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">'
            '<xs:element name="catalogue"/></xs:schema>',
            encoding="utf-8"
        )
        monkeypatch.setattr("services.xml_validator.XML_SCHEMAS_DIR", tmp_path)
        r = app_client.get("/api/products/export", headers=user_headers)
        assert r.status_code == 500
        detail = r.json()["detail"]
        assert detail["message"] == "XML validation failed"
        assert detail["details"] == "Root element mismatch. Expected: catalogue, Got: products"
        assert detail["errors"][0]["level"] == "error"


# ═══════════════════════════════════════════════════════════════
# 3. CLIENTS
# ═══════════════════════════════════════════════════════════════

class TestClients:
    def test_create_and_get(self, app_client, user_headers):
        client = _create_client(app_client, user_headers)
        r = app_client.get(f"/api/clients/{client['id']}", headers=user_headers)
        assert r.status_code == 200
        assert r.json()["raison_sociale"] == "Lumière SARL"
        assert r.json()["contacts"] == []

    def test_duplicate_reference(self, app_client, user_headers):
        _create_client(app_client, user_headers)
        r = app_client.post("/api/clients", json={
            "reference": "CLI-2024-001", "type": "PME", "raison_sociale": "Autre"
        }, headers=user_headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Client already exists"

    def test_delete_cascades_to_user(self, app_client, admin_headers, register):
        client = _create_client(app_client, admin_headers)
        register("lumiere", "client", client_id=client["id"])

        r = app_client.delete(f"/api/clients/{client['id']}", headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["message"] == "Client and associated user account deleted successfully"

        usernames = [u["username"] for u in app_client.get("/api/users", headers=admin_headers).json()]
        assert "lumiere" not in usernames

    def test_export_filename(self, app_client, user_headers):
        _create_client(app_client, user_headers)
        r = app_client.get("/api/clients/export", headers=user_headers)
        assert r.status_code == 200
        assert r.headers["content-disposition"] == 'attachment; filename="clients.xml"'
        assert "<raisonSociale>Lumière SARL</raisonSociale>" in r.text


# ═══════════════════════════════════════════════════════════════
# 4. COMMANDES + STOCK
# ═══════════════════════════════════════════════════════════════

class TestCommandes:
    def test_valide_with_insufficient_stock(self, app_client, user_headers):
        product = _create_product(app_client, user_headers, stock=5)
        _create_client(app_client, user_headers)

        r = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 7, statut="VALIDE"),
            headers=user_headers
        )
        assert r.status_code == 400
        detail = r.json()["detail"]
        assert detail["productName"] == "Lamp"
        assert detail["available"] == 5
        assert detail["requested"] == 7
        assert app_client.get("/api/orders", headers=user_headers).json() == []
        assert _stock(app_client, product["id"]) == 5

    def test_client_reference_resolved(self, app_client, user_headers):
        product = _create_product(app_client, user_headers)
        client = _create_client(app_client, user_headers)
        r = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 1),
            headers=user_headers
        )
        assert r.status_code == 201
        assert r.json()["client_id"] == client["id"]
        assert "date_creation" in r.json()

    def test_unknown_client(self, app_client, user_headers):
        product = _create_product(app_client, user_headers)
        r = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-NOPE", product["id"], 1),
            headers=user_headers
        )
        assert r.status_code == 400
        assert r.json()["detail"] == {"message": "Client not found with reference: CLI-NOPE"}

    def test_invalid_statut(self, app_client, user_headers):
        product = _create_product(app_client, user_headers)
        _create_client(app_client, user_headers)
        r = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 1, statut="LIVREE"),
            headers=user_headers
        )
        assert r.status_code == 422

    def test_status_lifecycle_moves_stock(self, app_client, user_headers):
        product = _create_product(app_client, user_headers, stock=10)
        _create_client(app_client, user_headers)
        commande = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 4),
            headers=user_headers
        ).json()
        url = f"/api/orders/{commande['id']}"

        assert app_client.put(url, json={"statut": "VALIDE"}, headers=user_headers).status_code == 200
        assert _stock(app_client, product["id"]) == 6

        # lignes modifiées, statut inchangé: pas de mouvement
        lignes = [{"produit_id": product["id"], "quantite": 1, "prix_unitaire_ht": 10.0, "total_ht": 10.0}]
        r = app_client.put(url, json={"lignes": lignes}, headers=user_headers)
        assert r.json()["lignes"][0]["quantite"] == 1
        assert _stock(app_client, product["id"]) == 6

        assert app_client.put(url, json={"statut": "ANNULE"}, headers=user_headers).status_code == 200
        assert _stock(app_client, product["id"]) == 7

        assert app_client.put(url, json={"statut": "BROUILLON"}, headers=user_headers).status_code == 200
        assert _stock(app_client, product["id"]) == 7

    def test_update_refused_keeps_order(self, app_client, user_headers):
        product = _create_product(app_client, user_headers, stock=1)
        _create_client(app_client, user_headers)
        commande = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 3),
            headers=user_headers
        ).json()

        r = app_client.put(f"/api/orders/{commande['id']}", json={"statut": "VALIDE"}, headers=user_headers)
        assert r.status_code == 400
        assert r.json()["detail"]["requested"] == 3
        assert app_client.get(f"/api/orders/{commande['id']}", headers=user_headers).json()["statut"] == "EN_ATTENTE"

    def test_get_expands_client_and_products(self, app_client, user_headers):
        product = _create_product(app_client, user_headers)
        _create_client(app_client, user_headers)
        commande = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 1),
            headers=user_headers
        ).json()

        r = app_client.get(f"/api/orders/{commande['id']}", headers=user_headers)
        assert r.status_code == 200
        data = r.json()
        assert data["client"]["raison_sociale"] == "Lumière SARL"
        assert data["lignes"][0]["produit"] == {"id": product["id"], "name": "Lamp", "price": 10.0}

    def test_import_and_export(self, app_client, user_headers):
        product = _create_product(app_client, user_headers, stock=2)
        _create_client(app_client, user_headers)
        xml = (
            "<commandes><commande><reference>CMD-X</reference>"
            "<clientId>CLI-2024-001</clientId><statut>VALIDE</statut>"
            f"<lignes><ligne><produitId>{product['id']}</produitId><quantite>9</quantite>"
            "<prixUnitaireHT>10</prixUnitaireHT><totalHT>90</totalHT></ligne></lignes>"
            "<totaux><totalHT>90</totalHT><totalTVA>18</totalTVA><totalTTC>108</totalTTC></totaux>"
            "</commande></commandes>"
        )
        r = app_client.post("/api/orders/import", files=_xml_file(xml), headers=user_headers)
        assert r.status_code == 201
        assert r.json()["results"][0]["message"] == "Order successfully added"
        assert _stock(app_client, product["id"]) == 2

        r = app_client.get("/api/orders/export", headers=user_headers)
        assert r.status_code == 200
        assert r.headers["content-disposition"] == 'attachment; filename="commandes.xml"'
        assert "<reference>CMD-X</reference>" in r.text

    def test_valide_takes_last_units(self, app_client, user_headers):
        product = _create_product(app_client, user_headers, name="Desk", stock=4)
        _create_client(app_client, user_headers)
        r = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 4, statut="VALIDE"),
            headers=user_headers
        )
        assert r.status_code == 201, r.text
        assert _stock(app_client, product["id"]) == 0

    def test_same_product_on_two_lines(self, app_client, user_headers):
        product = _create_product(app_client, user_headers, stock=5)
        _create_client(app_client, user_headers)
        payload = _commande("CMD-1", "CLI-2024-001", product["id"], 3, statut="VALIDE")
        payload["lignes"].append(dict(payload["lignes"][0]))

        r = app_client.post("/api/orders", json=payload, headers=user_headers)
        assert r.status_code == 400
        assert r.json()["detail"]["available"] == 5
        assert r.json()["detail"]["requested"] == 6
        assert _stock(app_client, product["id"]) == 5

    def test_failed_write_reverts_stock(self, app_client, user_headers, mock_db, monkeypatch):
        from pymongo.errors import DuplicateKeyError

        product = _create_product(app_client, user_headers, stock=10)
        _create_client(app_client, user_headers)
        commande = app_client.post(
            "/api/orders",
            json=_commande("CMD-1", "CLI-2024-001", product["id"], 4),
            headers=user_headers
        ).json()

        # Une autre commande prend la référence entre la vérification et l'écriture
        class ClashingCommandes:
            def __getattr__(self, name):
                return getattr(mock_db.commandes, name)

            async def update_one(self, *args, **kwargs):
                raise DuplicateKeyError("E11000 duplicate key error")

        class Database:
            commandes = ClashingCommandes()

            def __getattr__(self, name):
                return getattr(mock_db, name)

        monkeypatch.setattr("routes.commandes.db", Database())

        r = app_client.put(
            f"/api/orders/{commande['id']}",
            json={"reference": "CMD-2", "statut": "VALIDE"},
            headers=user_headers
        )
        assert r.status_code == 400
        assert r.json()["detail"] == "Order already exists"
        assert _stock(app_client, product["id"]) == 10


# ═══════════════════════════════════════════════════════════════
# 5. DROITS PAR RÔLE
# ═══════════════════════════════════════════════════════════════

class TestRoles:
    def test_client_sees_only_own_orders(self, app_client, user_headers, register):
        product = _create_product(app_client, user_headers)
        mine = _create_client(app_client, user_headers, reference="CLI-A")
        _create_client(app_client, user_headers, reference="CLI-B")
        own = app_client.post("/api/orders", json=_commande("CMD-A", "CLI-A", product["id"], 1), headers=user_headers).json()
        other = app_client.post("/api/orders", json=_commande("CMD-B", "CLI-B", product["id"], 1), headers=user_headers).json()

        client_headers = register("lumiere", "client", client_id=mine["id"])
        orders = app_client.get("/api/orders", headers=client_headers).json()
        assert [o["reference"] for o in orders] == ["CMD-A"]

        assert app_client.get(f"/api/orders/{own['id']}", headers=client_headers).status_code == 200
        assert app_client.get(f"/api/orders/{other['id']}", headers=client_headers).status_code == 403

    def test_client_cannot_manage(self, app_client, register):
        client_headers = register("lumiere", "client")
        r = app_client.post("/api/products", json={"name": "X", "price": 1}, headers=client_headers)
        assert r.status_code == 403
        assert app_client.get("/api/orders/export", headers=client_headers).status_code == 403

    def test_users_admin_only(self, app_client, user_headers, admin_headers):
        assert app_client.get("/api/users", headers=user_headers).status_code == 403
        r = app_client.get("/api/users", headers=admin_headers)
        assert r.status_code == 200
        assert all("password" not in u for u in r.json())


# ═══════════════════════════════════════════════════════════════
# 6. UTILISATEURS
# ═══════════════════════════════════════════════════════════════

class TestUsers:
    def test_update_password_and_detach_client(self, app_client, admin_headers):
        client = _create_client(app_client, admin_headers)
        r = app_client.post("/api/users", json={
            "username": "lumiere", "password": "old", "role": "client", "client_id": client["id"]
        }, headers=admin_headers)
        assert r.status_code == 201
        user = r.json()
        assert user["client_id"] == client["id"]

        r = app_client.put(
            f"/api/users/{user['id']}",
            json={"password": "new-pass", "client_id": ""},
            headers=admin_headers
        )
        assert r.status_code == 200
        assert "client_id" not in r.json()

        login = app_client.post("/api/auth/login", json={"username": "lumiere", "password": "new-pass"})
        assert login.status_code == 200

    def test_import_and_export(self, app_client, admin_headers):
        xml = "<users><user><username>bob</username><password>pw</password></user></users>"
        r = app_client.post("/api/users/import", files=_xml_file(xml, mime="text/xml"), headers=admin_headers)
        assert r.status_code == 201
        assert r.json()["summary"]["success"] == 1

        r = app_client.get("/api/users/export", headers=admin_headers)
        assert r.status_code == 200
        assert "<username>bob</username>" in r.text
        assert "<password>" not in r.text

        login = app_client.post("/api/auth/login", json={"username": "bob", "password": "pw"})
        assert login.status_code == 200
        assert login.json()["user"]["role"] == "client"

    def test_delete(self, app_client, admin_headers, register):
        register("temp", "user")
        users = app_client.get("/api/users", headers=admin_headers).json()
        temp = next(u for u in users if u["username"] == "temp")
        assert app_client.delete(f"/api/users/{temp['id']}", headers=admin_headers).status_code == 200
        assert app_client.delete(f"/api/users/{temp['id']}", headers=admin_headers).status_code == 404
