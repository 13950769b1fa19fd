import io

import pandas as pd
import pytest

from app import create_app

from conftest import GST_LEDGER_NAMES


@pytest.fixture
def client(tmp_path):
    app = create_app(overrides={
        "TESTING": True,
        "UPLOAD_FOLDER": tmp_path / "runs",
        "CACHE_TYPE": "NullCache",
    })
    return app.test_client()


def snapshot_payload(ledgers=None):
    return {
        "audit_date": "2024-03-31",
        "company": {
            "name": "Acme Traders",
            "gstin": "27AAPFU0939F1ZV",
            "pan": "AAPFU0939F",
            "tan": "MUMA12345B",
            "state": "Maharashtra",
        },
        "ledgers": ledgers if ledgers is not None else [
            {"name": "Output CGST", "parent_group": "Duties & Taxes"},
            {"name": "Input IGST", "parent_group": "Duties & Taxes"},
        ],
        "stock_items": [{"name": "Widget", "classification_code": "8471", "tax_rate": "18",
                         "unit_of_measure": "Nos"}],
    }


def run_audit(client, payload=None):
    response = client.post("/audit", json=payload or snapshot_payload())
    assert response.status_code == 201
    return response.get_json()


def test_audit_from_json_snapshot(client):
    body = run_audit(client)

    assert body["run_id"].startswith("run_")
    assert body["company_name"] == "Acme Traders"
    assert body["audit_date"] == "2024-03-31"
    assert [c["category"] for c in body["categories"]][0] == "Company Info"
    gst = [c for c in body["categories"] if c["category"] == "GST"][0]
    assert "GST_OUTPUT_IGST_MISSING" in [issue["id"] for issue in gst["issues"]]


def test_audit_rejects_incomplete_snapshot(client):
    response = client.post("/audit", json={"ledgers": []})

    assert response.status_code == 400
    assert "company.name" in response.get_json()["error"]


def test_runs_listing_and_detail(client):
    body = run_audit(client)
    run_id = body["run_id"]

    runs = client.get("/runs").get_json()["runs"]
    detail = client.get(f"/runs/{run_id}")

    assert run_id in [run["run_id"] for run in runs]
    assert detail.status_code == 200
    assert detail.get_json()["overall_score"] == body["overall_score"]
    assert client.get("/runs/run_missing").status_code == 404


def test_detail_truncates_subjects_but_not_counts(client):
    debtors = [
        {"name": f"Customer {n:02d}", "parent_group": "Sundry Debtors", "closing_balance": "1000", "state": "Goa"}
        for n in range(20)
    ]
    run_id = run_audit(client, snapshot_payload(debtors))["run_id"]

    detail = client.get(f"/runs/{run_id}?limit=5").get_json()

    party = [c for c in detail["categories"] if c["category"] == "Party Master"][0]
    issue = party["issues"][0]
    assert len(issue["affected_subjects"]) == 5
    assert issue["affected_count"] == 20


def test_fix_preview_and_apply(client):
    run_id = run_audit(client)["run_id"]

    preview = client.get(f"/runs/{run_id}/fixes/GST_OUTPUT_IGST_MISSING/preview")
    applied = client.post(f"/runs/{run_id}/fixes", json={"issue_ids": ["GST_OUTPUT_IGST_MISSING"]})

    assert preview.status_code == 200
    assert preview.get_json()["action"] == "create_subject"
    assert applied.status_code == 200
    assert applied.get_json()["success_count"] == 1


def test_fix_errors(client):
    run_id = run_audit(client, snapshot_payload([
        {"name": name, "parent_group": "Duties & Taxes"} for name in GST_LEDGER_NAMES
    ] + [{"name": "Customer", "parent_group": "Sundry Debtors", "closing_balance": "10"}]))["run_id"]

    missing = client.get(f"/runs/{run_id}/fixes/NO_SUCH_ISSUE/preview")
    not_fixable = client.get(f"/runs/{run_id}/fixes/PARTY_DEBTORS_NO_GSTIN/preview")
    bad_body = client.post(f"/runs/{run_id}/fixes", json={"issue_ids": []})

    assert missing.status_code == 404
    assert not_fixable.status_code == 422
    assert bad_body.status_code == 400


def test_apply_all_fixable(client):
    run_id = run_audit(client)["run_id"]

    body = client.post(f"/runs/{run_id}/fixes", json={"all": True}).get_json()

    # 4 GST and 5 TDS ledgers missing
    assert body["success_count"] == 9
    assert body["error_count"] == 0


def test_bank_reconciliation_endpoint(client):
    payload = {
        "as_of": "2024-03-31",
        "book": [
            {"date": "2024-03-01", "amount": "10000", "cleared_date": "2024-03-02"},
            {"date": "2024-03-10", "amount": "-3000", "instrument_id": "CHQ501"},
        ],
        "statement": [{"date": "2024-03-01", "amount": "10000"}],
    }

    body = client.post("/reconcile/bank", json=payload).get_json()

    assert body["summary"]["total_matched"] == 1
    assert body["kpis"]["unmatched_book"] == 1
    assert body["brs"]["balance_as_per_books"] == 7000.0
    assert body["brs"]["balance_as_per_bank"] == 10000.0
    assert body["uncleared_aging"]["remarks"] == "No stale cheques found."


def test_bank_reconciliation_rejects_inverted_period(client):
    response = client.post("/reconcile/bank", json={
        "book": [], "statement": [], "period": {"start": "2024-04-01", "end": "2024-03-01"},
    })

    assert response.status_code == 400


def test_gst_reconciliation_endpoint(client):
    payload = {
        "book": [{"date": "2024-03-05", "counterparty_id": "27AAPFU0939F1ZV", "external_reference": "INV-2",
                  "amount": "5900"}],
        "filed": [{"date": "2024-03-05", "counterparty_id": "27AAPFU0939F1ZV", "external_reference": "INV-2",
                   "amount": "5000"}],
        "totals": {"books": {"IGST": "1000"}, "filed": {"IGST": "1000.40"}},
    }

    body = client.post("/reconcile/gst", json=payload).get_json()

    assert body["value_mismatches"][0]["difference"] == 900.0
    assert body["totals"]["is_reconciled"] is True


def test_aging_endpoint(client):
    payload = {
        "as_of": "2024-03-31",
        "ledgers": [
            {"name": "Alpha Stores", "parent_group": "Sundry Debtors", "closing_balance": "5000"},
            {"name": "Beta Mart", "parent_group": "Sundry Debtors", "closing_balance": "0"},
        ],
        "bills": [{"date": "2024-03-20", "counterparty_id": "Alpha Stores", "amount": "5000"}],
    }

    body = client.post("/aging/receivables", json=payload).get_json()

    assert body["total"] == 5000.0
    assert [p["party"] for p in body["parties"]] == ["Alpha Stores"]
    assert body["parties"][0]["buckets"]["days_30"]["amount"] == 5000.0


def test_aging_errors(client):
    assert client.post("/aging/sideways", json={"as_of": "2024-03-31"}).status_code == 404
    assert client.post("/aging/payables", json={"ledgers": []}).status_code == 400
    assert client.post("/aging/payables", json={"as_of": "31/03/2024"}).status_code == 400


def test_audit_from_uploaded_workbook(client):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame({"NAME": ["Acme Traders"], "STATENAME": ["Goa"]}).to_excel(
            writer, sheet_name="Company", index=False)
        pd.DataFrame({
            "DATE": [pd.Timestamp("2024-03-10")], "VOUCHERNUMBER": ["PMT-1"],
            "PARTYLEDGERNAME": ["Steel Supplier"], "AMOUNT": [-3000], "INSTRUMENTNUMBER": ["501"],
        }).to_excel(writer, sheet_name="Bank Book", index=False)
        pd.DataFrame({
            "DATE": [pd.Timestamp("2024-03-12")], "VOUCHERNUMBER": ["S-1"],
            "PARTYLEDGERNAME": ["HDFC Bank"], "AMOUNT": [-3000], "INSTRUMENTNUMBER": ["501"],
        }).to_excel(writer, sheet_name="Bank Statement", index=False)
    buffer.seek(0)

    response = client.post(
        "/audit",
        data={"file": (buffer, "acme.xlsx"), "audit_date": "2024-03-31"},
        content_type="multipart/form-data",
    )

    body = response.get_json()
    assert response.status_code == 201
    assert body["company_name"] == "Acme Traders"
    degraded = {c["category"] for c in body["categories"] if c["degraded"]}
    assert "GST" in degraded and "Stock Item" in degraded
    assert body["reconciliation"]["exact_matches"] == 1


def test_upload_must_be_xlsx(client):
    response = client.post(
        "/audit",
        data={"file": (io.BytesIO(b"a,b"), "ledgers.csv")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 400


@pytest.mark.parametrize("path, payload", [
    ("/reconcile/bank", {"book": [], "statement": [], "period": "2024-03"}),
    ("/reconcile/bank", {"book": ["2024-03-01"], "statement": []}),
    ("/reconcile/bank", {"book": {"amount": "10"}, "statement": []}),
    ("/reconcile/gst", {"book": [], "filed": [], "totals": ["IGST"]}),
    ("/reconcile/gst", {"book": [], "filed": [], "totals": {"books": ["IGST"]}}),
    ("/aging/receivables", {"as_of": "2024-03-31", "ledgers": ["Alpha Stores"]}),
    ("/audit", {"company": "Acme Traders"}),
    ("/audit", {"company": {"name": "Acme Traders"}, "stock_items": [7]}),
])
def test_malformed_shapes_are_bad_requests(client, path, payload):
    response = client.post(path, json=payload)

    assert response.status_code == 400
    assert "error" in response.get_json()
