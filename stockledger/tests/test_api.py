from stockledger.app.db.models.core_types import Role

from conftest import auth, make_article, make_supplier, make_user, stock_of


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_missing_identity_is_401(client):
    r = client.get("/v1/stock")
    assert r.status_code == 401
    assert r.json() == {"message": "No autenticado"}


def test_inactive_user_is_401(client, db_session):
    user = make_user(db_session, active=False)
    r = client.get("/v1/stock", headers=auth(user))
    assert r.status_code == 401


def test_post_movement_returns_previous_and_new_quantity(client, db_session):
    user = make_user(db_session, role=Role.operador)
    art = make_article(db_session, user=user, quantity=10)

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "salida", "quantity": 4, "reason": "consumo"},
        headers=auth(user),
    )

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["stock_anterior"] == 10
    assert body["stock_nuevo"] == 6
    assert body["movement"]["quantity"] == 4
    assert body["movement"]["user_id"] == user.id
    assert body["movement"]["article_code"] == art.code
    assert stock_of(db_session, art.id) == 6


def test_insufficient_stock_payload(client, db_session):
    user = make_user(db_session)
    art = make_article(db_session, user=user, quantity=5)

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "salida", "quantity": 10},
        headers=auth(user),
    )

    assert r.status_code == 400
    assert r.json() == {
        "message": "Stock insuficiente",
        "code": "INSUFFICIENT_STOCK",
        "stockActual": 5,
        "solicitado": 10,
    }
    assert stock_of(db_session, art.id) == 5


def test_invalid_payload_is_validation_error(client, db_session):
    user = make_user(db_session)
    art = make_article(db_session)

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "entrada", "quantity": 0},
        headers=auth(user),
    )

    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert r.json()["errors"]


def test_ajuste_to_zero_is_accepted(client, db_session):
    user = make_user(db_session)
    art = make_article(db_session, user=user, quantity=3)

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "ajuste", "quantity": 0},
        headers=auth(user),
    )

    assert r.status_code == 201, r.text
    assert r.json()["stock_nuevo"] == 0


def test_unknown_article_is_404(client, db_session):
    user = make_user(db_session)

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": 424242, "movement_type": "entrada", "quantity": 1},
        headers=auth(user),
    )

    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


def test_solicitante_cannot_record_movements(client, db_session):
    user = make_user(db_session, role=Role.solicitante)
    art = make_article(db_session)

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "entrada", "quantity": 1},
        headers=auth(user),
    )

    assert r.status_code == 403
    body = r.json()
    assert body["code"] == "AUTHORIZATION_DENIED"
    assert body["permission"] == "movimientos:create"
    assert body["role"] == "solicitante"
    assert stock_of(db_session, art.id) is None


def test_purchase_order_flow(client, db_session):
    admin = make_user(db_session)
    operador = make_user(db_session, role=Role.operador)
    supplier = make_supplier(db_session)
    a = make_article(db_session, supplier=supplier)
    b = make_article(db_session, supplier=supplier)

    r = client.post(
        "/v1/purchase-orders",
        json={
            "order_number": "OC-001",
            "supplier_id": supplier.id,
            "lines": [{"article_id": a.id, "quantity": 5}, {"article_id": b.id, "quantity": 3}],
        },
        headers=auth(admin),
    )
    assert r.status_code == 201, r.text
    po = r.json()
    assert po["status"] == "pendiente"
    assert len(po["lines"]) == 2

    # operador : compras:read seulement
    r = client.patch(f"/v1/purchase-orders/{po['id']}/status", json={"status": "recibida"}, headers=auth(operador))
    assert r.status_code == 403
    assert r.json()["permission"] == "compras:update"

    r = client.patch(f"/v1/purchase-orders/{po['id']}/status", json={"status": "recibida"}, headers=auth(admin))
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "recibida"
    assert r.json()["received_at"] is not None
    assert stock_of(db_session, a.id) == 5
    assert stock_of(db_session, b.id) == 3

    r = client.patch(f"/v1/purchase-orders/{po['id']}/status", json={"status": "cancelada"}, headers=auth(admin))
    assert r.status_code == 409
    assert r.json()["code"] == "CONFLICT"

    r = client.get("/v1/stock-movements", params={"tipo": "entrada"}, headers=auth(operador))
    assert r.status_code == 200
    assert sorted(m["article_id"] for m in r.json()) == sorted([a.id, b.id])
    assert all("OC-001" in m["reason"] for m in r.json())


def test_duplicate_order_number_is_409(client, db_session):
    admin = make_user(db_session)
    supplier = make_supplier(db_session)
    a = make_article(db_session)
    payload = {"order_number": "OC-9", "supplier_id": supplier.id, "lines": [{"article_id": a.id, "quantity": 1}]}

    assert client.post("/v1/purchase-orders", json=payload, headers=auth(admin)).status_code == 201
    r = client.post("/v1/purchase-orders", json=payload, headers=auth(admin))
    assert r.status_code == 409


def test_stock_listing_filters_by_status(client, db_session):
    user = make_user(db_session)
    make_article(db_session, name="Bajo", user=user, quantity=4, min_stock=5)
    make_article(db_session, name="Vacio")

    r = client.get("/v1/stock", params={"estado": "sin-stock"}, headers=auth(user))
    assert r.status_code == 200
    assert [row["name"] for row in r.json()] == ["Vacio"]
    assert r.json()[0]["min_stock"] is None

    r = client.get("/v1/stock/alerts", headers=auth(user))
    assert [row["name"] for row in r.json()] == ["Bajo"]
    assert r.json()[0]["status"] == "bajo"

    r = client.get("/v1/stock", params={"estado": "agotado"}, headers=auth(user))
    assert r.status_code == 400


def test_put_stock_levels_null_clears_threshold(client, db_session):
    user = make_user(db_session, role=Role.encargado)
    art = make_article(db_session, user=user, quantity=2, min_stock=10, max_stock=20)

    r = client.put(f"/v1/stock/{art.id}", json={"min_stock": None}, headers=auth(user))

    assert r.status_code == 200, r.text
    assert r.json()["min_stock"] is None
    assert r.json()["max_stock"] == 20
    assert r.json()["quantity"] == 2


def test_user_cannot_deactivate_self(client, db_session):
    admin = make_user(db_session)

    r = client.patch(f"/v1/users/{admin.id}", json={"active": False}, headers=auth(admin))
    assert r.status_code == 403

    r = client.patch(f"/v1/users/{admin.id}", json={"role": "operador"}, headers=auth(admin))
    assert r.status_code == 403

    db_session.expire_all()
    assert admin.active is True
    assert admin.role is Role.admin


def test_admin_can_change_other_user(client, db_session):
    admin = make_user(db_session)
    other = make_user(db_session, role=Role.operador)

    r = client.patch(f"/v1/users/{other.id}", json={"role": "encargado"}, headers=auth(admin))

    assert r.status_code == 200, r.text
    assert r.json()["role"] == "encargado"


def test_soft_deleted_article_leaves_stock_listing(client, db_session):
    admin = make_user(db_session)
    art = make_article(db_session, user=admin, quantity=1)

    assert client.delete(f"/v1/articles/{art.id}", headers=auth(admin)).status_code == 200
    r = client.get("/v1/stock", headers=auth(admin))
    assert r.json() == []

    r = client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "entrada", "quantity": 1},
        headers=auth(admin),
    )
    assert r.status_code == 404


def test_patch_user_route_resolves_header_and_path_id(client, db_session):
    admin = make_user(db_session)
    other = make_user(db_session, role=Role.encargado)

    r = client.patch(f"/v1/users/{other.id}", json={"active": False}, headers=auth(admin))

    assert r.status_code == 200, r.text
    assert r.json()["id"] == other.id
    assert r.json()["active"] is False

    r = client.patch(f"/v1/users/{other.id}", json={"active": True})
    assert r.status_code == 401


def test_create_article_with_initial_stock(client, db_session):
    admin = make_user(db_session)

    r = client.post(
        "/v1/articles",
        json={
            "code": "ACE-1",
            "name": "Aceite",
            "category": "almacen",
            "initial_stock": 12,
            "min_stock": 5,
            "max_stock": 50,
            "location": "B-02",
        },
        headers=auth(admin),
    )

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["quantity"] == 12
    assert body["min_stock"] == 5
    assert body["location"] == "B-02"
    assert stock_of(db_session, body["id"]) == 12

    r = client.get("/v1/stock-movements", params={"article_id": body["id"]}, headers=auth(admin))
    movements = r.json()
    assert len(movements) == 1
    assert movements[0]["movement_type"] == "entrada"
    assert movements[0]["quantity"] == 12
    assert movements[0]["reason"] == "Stock inicial"
    assert movements[0]["user_id"] == admin.id


def test_create_article_without_initial_stock_posts_no_movement(client, db_session):
    admin = make_user(db_session)

    r = client.post("/v1/articles", json={"code": "SAL-1", "name": "Sal", "category": "almacen"}, headers=auth(admin))

    assert r.status_code == 201, r.text
    assert r.json()["quantity"] == 0
    assert r.json()["min_stock"] is None
    r = client.get("/v1/stock-movements", params={"article_id": r.json()["id"]}, headers=auth(admin))
    assert r.json() == []


def test_create_article_rejects_min_above_max(client, db_session):
    admin = make_user(db_session)

    r = client.post(
        "/v1/articles",
        json={"code": "X-1", "name": "X", "category": "c", "initial_stock": 3, "min_stock": 9, "max_stock": 4},
        headers=auth(admin),
    )

    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert client.get("/v1/articles", headers=auth(admin)).json() == []


def test_article_with_unknown_or_inactive_supplier_is_404(client, db_session):
    admin = make_user(db_session)
    retired = make_supplier(db_session, active=False)

    for supplier_id in (retired.id, 987_654):
        r = client.post(
            "/v1/articles",
            json={"code": f"P-{supplier_id}", "name": "P", "category": "c", "supplier_id": supplier_id, "initial_stock": 2},
            headers=auth(admin),
        )
        assert r.status_code == 404
        assert r.json()["code"] == "NOT_FOUND"

    art = make_article(db_session)
    r = client.patch(f"/v1/articles/{art.id}", json={"supplier_id": retired.id}, headers=auth(admin))
    assert r.status_code == 404
    assert client.get("/v1/articles", headers=auth(admin)).json()[0]["supplier_id"] is None


def test_movement_stats_route(client, db_session):
    user = make_user(db_session, role=Role.operador)
    art = make_article(db_session, user=user, quantity=8)
    client.post(
        "/v1/stock-movements",
        json={"article_id": art.id, "movement_type": "salida", "quantity": 3},
        headers=auth(user),
    )

    r = client.get("/v1/stock-movements/stats", headers=auth(user))

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["today"] == 2
    assert {t["movement_type"]: t["total_quantity"] for t in body["by_type"]} == {"entrada": 8, "salida": 3}
    assert body["top_articles"][0]["article_id"] == art.id
    assert body["top_articles"][0]["total_movements"] == 2
