from __future__ import annotations

import json
from decimal import Decimal

from httpx import ASGITransport, AsyncClient

from click_store.api import create_app
from click_store.config import Settings


async def _create_product(client: AsyncClient, **payload) -> dict:
    body = {"name": "Roteador", "price": "199.90", **payload}
    response = await client.post("/products", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_customer(client: AsyncClient, name: str = "Ana Souza") -> dict:
    response = await client.post("/customers", json={"name": name, "email": "ana@example.com"})
    assert response.status_code == 201, response.text
    return response.json()


async def test_health_endpoint(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "environment": "test"}


async def test_create_product_speaks_camel_case(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B", "C"], brand="TP-Link")

    assert product["kind"] == "product"
    assert product["stock"] == 3
    assert product["serialNumbers"] == ["A", "B", "C"]
    assert product["serialized"] is True
    assert Decimal(product["price"]) == Decimal("199.90")
    assert "createdAt" in product

    listed = (await client.get("/products")).json()
    assert [p["id"] for p in listed] == [product["id"]]
    assert (await client.get("/accessories")).json() == []


async def test_semicolon_serial_string_is_accepted(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers="S1; S2;")

    assert product["serialNumbers"] == ["S1", "S2"]
    assert product["stock"] == 2


async def test_create_with_mismatched_stock_is_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/products", json={"name": "Switch", "stock": 5, "serialNumbers": ["A"]}
    )

    assert response.status_code == 409
    assert response.json()["code"] == "stock_mismatch"
    assert (await client.get("/products")).json() == []


async def test_unit_lifecycle_over_http(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B", "C"])
    customer = await _create_customer(client)
    company = (await client.post("/companies", json={"name": "Oficina X"})).json()

    response = await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "quantity": 2},
    )
    assert response.status_code == 200, response.text
    assignment = response.json()
    assert assignment["quantity"] == 2
    assert assignment["serialNumbers"] == ["A", "B"]

    response = await client.post(
        "/assignments/return",
        json={"customerId": customer["id"], "itemId": product["id"], "serialNumbers": ["B"]},
    )
    assert response.status_code == 200, response.text
    returned = response.json()
    assert returned["assignment"]["quantity"] == 1
    assert returned["assignment"]["serialNumbers"] == ["A"]
    assert returned["item"]["stock"] == 2
    assert returned["item"]["serialNumbers"] == ["C", "B"]

    response = await client.post(
        "/maintenance",
        json={"itemId": product["id"], "companyId": company["id"], "serialNumbers": ["A"]},
    )
    assert response.status_code == 201, response.text
    batch = response.json()
    assert batch["originalProductId"] == product["id"]
    assert batch["serialNumbers"] == ["A"]
    assert batch["stock"] == 1
    assert batch["companyId"] == company["id"]
    remaining = (await client.get("/assignments", params={"customer_id": customer["id"]})).json()
    assert remaining == []

    response = await client.post(f"/maintenance/{batch['id']}/restore")
    assert response.status_code == 200, response.text
    restored = response.json()
    assert restored["stock"] == 3
    assert sorted(restored["serialNumbers"]) == ["A", "B", "C"]
    assert (await client.get("/maintenance")).json() == []

    consistency = (await client.get("/reports/consistency")).json()
    assert consistency == {"ok": True, "issues": []}


async def test_over_assignment_returns_conflict(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["X"])
    customer = await _create_customer(client)

    response = await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "quantity": 5},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["status"] == "error"
    assert body["code"] == "insufficient_stock"
    unchanged = (await client.get(f"/products/{product['id']}")).json()
    assert unchanged["stock"] == 1
    assert unchanged["serialNumbers"] == ["X"]


async def test_missing_records_return_not_found(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["X"])

    response = await client.get("/products/missing")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"

    response = await client.get(f"/accessories/{product['id']}")
    assert response.status_code == 404

    response = await client.post(
        "/assignments", json={"customerId": "missing", "itemId": product["id"], "quantity": 1}
    )
    assert response.status_code == 404

    response = await client.post("/maintenance/missing/restore")
    assert response.status_code == 404


async def test_assignment_needs_quantity_or_serials(client: AsyncClient) -> None:
    response = await client.post(
        "/assignments",
        json={"customerId": "c", "itemId": "p", "quantity": 1, "serialNumbers": ["A"]},
    )
    assert response.status_code == 422

    response = await client.post("/assignments", json={"customerId": "c", "itemId": "p"})
    assert response.status_code == 422


async def test_assign_by_serials_over_http(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B", "C"])
    customer = await _create_customer(client)

    response = await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "serialNumbers": "C;A"},
    )

    assert response.status_code == 200, response.text
    assert response.json()["serialNumbers"] == ["A", "C"]
    shelf = (await client.get(f"/products/{product['id']}")).json()
    assert shelf["serialNumbers"] == ["B"]
    assert shelf["stock"] == 1


async def test_delete_customer_returns_units_to_stock(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B"])
    customer = await _create_customer(client)
    await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "quantity": 2},
    )

    response = await client.delete(f"/customers/{customer['id']}")

    assert response.status_code == 204
    shelf = (await client.get(f"/products/{product['id']}")).json()
    assert shelf["stock"] == 2
    assert sorted(shelf["serialNumbers"]) == ["A", "B"]
    assert (await client.get("/assignments")).json() == []
    assert (await client.get(f"/customers/{customer['id']}")).status_code == 404


async def test_whole_item_maintenance_and_restore(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B"], category="Redes")
    customer = await _create_customer(client)
    await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "quantity": 1},
    )

    response = await client.post("/maintenance", json={"itemId": product["id"]})

    assert response.status_code == 201, response.text
    batch = response.json()
    assert batch["stock"] == 1
    assert batch["serialNumbers"] == ["B"]
    assert (await client.get(f"/products/{product['id']}")).status_code == 404
    assert (await client.get("/assignments")).json() == []

    restored = (await client.post(f"/maintenance/{batch['id']}/restore")).json()
    assert restored["id"] == product["id"]
    assert restored["category"] == "Redes"
    assert restored["serialNumbers"] == ["B"]


async def test_update_product_serials(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B"])
    customer = await _create_customer(client)
    await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "quantity": 1},
    )

    response = await client.put(
        f"/products/{product['id']}", json={"serialNumbers": ["B", "Z"], "price": "150"}
    )
    assert response.status_code == 200, response.text
    updated = response.json()
    assert updated["stock"] == 2
    assert updated["serialNumbers"] == ["B", "Z"]
    assert Decimal(updated["price"]) == Decimal("150")

    response = await client.put(f"/products/{product['id']}", json={"serialNumbers": ["A"]})
    assert response.status_code == 409
    assert response.json()["code"] == "serial_conflict"


async def test_delete_company_detaches_batches(client: AsyncClient) -> None:
    product = await _create_product(client, serialNumbers=["A", "B"])
    company = (await client.post("/companies", json={"name": "Oficina Y"})).json()
    await client.post(
        "/maintenance",
        json={"itemId": product["id"], "companyId": company["id"], "quantity": 1},
    )

    response = await client.delete(f"/companies/{company['id']}")

    assert response.status_code == 204
    batches = (await client.get("/maintenance")).json()
    assert len(batches) == 1
    assert batches[0]["companyId"] is None


async def test_report_summary(client: AsyncClient) -> None:
    product = await _create_product(client, price="10.00", serialNumbers=["A", "B"])
    accessory = await client.post("/accessories", json={"name": "Fonte", "price": "5.00", "stock": 4})
    assert accessory.status_code == 201
    customer = await _create_customer(client)
    await client.post(
        "/assignments",
        json={"customerId": customer["id"], "itemId": product["id"], "quantity": 1},
    )

    summary = (await client.get("/reports/summary")).json()

    assert summary["totalProducts"] == 1
    assert summary["totalAccessories"] == 1
    assert summary["totalCustomers"] == 1
    assert summary["totalCompanies"] == 0
    assert summary["totalStock"] == 5
    assert summary["lowStockProducts"] == 1
    assert Decimal(summary["totalValue"]) == Decimal("30")
    assert Decimal(summary["averageProductPrice"]) == Decimal("10")
    assert summary["totalAssignments"] == 1
    assert summary["assignedUnits"] == 1
    assert summary["recentAssignments"] == 1
    assert summary["maintenanceBatches"] == 0


async def test_json_backend_persists_to_file(tmp_path) -> None:
    storage = tmp_path / "db.json"
    settings = Settings(
        environment="test",
        storage_backend="json",
        json_storage_path=str(storage),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'unused.db'}",
    )
    app = create_app(settings)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            product = await _create_product(client, serialNumbers=["A"])
            customer = await _create_customer(client)
            response = await client.post(
                "/assignments",
                json={"customerId": customer["id"], "itemId": product["id"], "quantity": 1},
            )
            assert response.status_code == 200, response.text
    finally:
        await app.state.engine.dispose()

    document = json.loads(storage.read_text(encoding="utf-8"))
    assert document["products"][0]["serial_numbers"] == []
    assert document["customer_products"][0]["product_id"] == product["id"]
    assert document["customer_products"][0]["serial_numbers"] == ["A"]
