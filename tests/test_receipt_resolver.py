import asyncio

import pytest

from backend.services.receipt_resolver import ReceiptResolver
from fake_uber import CREDENTIAL, FakeUber, invoice_url
from ride_ledger.models import EnrichedRide


def ride(ride_id, auto=False):
    return EnrichedRide(
        ride_id=ride_id,
        start_time="2024-11-16T22:33:00Z",
        end_time="2024-11-16T23:05:00Z",
        start_location="A",
        end_location="B",
        amount=10.0,
        currency="INR",
        driver_name="D",
        vehicle_type="Auto" if auto else "UberGo",
        vehicle_category="auto" if auto else "standard",
        status="COMPLETED",
        map_url="",
        is_auto_type=auto,
    )


def resolver_for(fake):
    return ReceiptResolver(fake.client(), clock=lambda: 1700000000000)


def test_simple_flow_skips_invoice_listing():
    fake = FakeUber()

    url, strategy = asyncio.run(resolver_for(fake).resolve_url(CREDENTIAL, "auto-1", True))

    assert strategy == "receipt"
    assert url == "https://riders.test/trips/auto-1/receipt?contentType=PDF&timestamp=1700000000000"
    assert fake.calls["GetInvoiceFiles"] == 0
    assert fake.requests == []


def test_first_invoice_file_wins():
    fake = FakeUber(invoices={"car-1": [invoice_url("car-1"), invoice_url("other")]})

    url, strategy = asyncio.run(resolver_for(fake).resolve_url(CREDENTIAL, "car-1", False))

    assert (url, strategy) == (invoice_url("car-1"), "invoice")


def test_empty_listing_falls_back_to_receipt():
    fake = FakeUber(invoices={"car-1": []})

    url, strategy = asyncio.run(resolver_for(fake).resolve_url(CREDENTIAL, "car-1", False))

    assert strategy == "receipt_fallback"
    assert url.startswith("https://riders.test/trips/car-1/receipt?contentType=PDF")


def test_listing_error_falls_back_to_receipt():
    fake = FakeUber()
    fake.failing_invoices.add("car-1")

    _, strategy = asyncio.run(resolver_for(fake).resolve_url(CREDENTIAL, "car-1", False))

    assert strategy == "receipt_fallback"
    assert fake.calls["GetInvoiceFiles"] == 1


def test_fetch_failure_does_not_abort_siblings():
    fake = FakeUber(invoices={"car-1": [invoice_url("car-1")]})
    fake.failing_documents.add("car-2")
    rides = [ride("car-1"), ride("car-2"), ride("auto-3", auto=True)]

    documents = asyncio.run(resolver_for(fake).fetch_documents(CREDENTIAL, rides))

    assert [d.ride_id for d in documents] == ["car-1", "car-2", "auto-3"]
    assert [d.ok for d in documents] == [True, False, True]
    assert [d.strategy for d in documents] == ["invoice", "receipt_fallback", "receipt"]
    assert documents[1].error == "Failed to fetch PDF: 404"
    assert documents[0].content.startswith(b"%PDF")


def test_downloads_carry_session_cookie():
    fake = FakeUber()

    asyncio.run(resolver_for(fake).fetch_document(CREDENTIAL, "auto-1", True))

    assert fake.requests[0].headers["cookie"] == CREDENTIAL.cookie


def test_payload_shape():
    fake = FakeUber()
    fake.failing_documents.add("auto-1")

    document = asyncio.run(resolver_for(fake).fetch_document(CREDENTIAL, "auto-1", True))

    assert document.to_payload() == {"rideId": "auto-1", "pdfBase64": None, "error": "Failed to fetch PDF: 404"}


def test_ride_id_is_required():
    fake = FakeUber()

    with pytest.raises(ValueError):
        asyncio.run(resolver_for(fake).fetch_documents(CREDENTIAL, [ride("")]))
    with pytest.raises(ValueError):
        asyncio.run(resolver_for(fake).fetch_documents(CREDENTIAL, []))


def test_results_keep_request_order_when_first_download_is_slowest():
    fake = FakeUber(invoices={"car-1": [invoice_url("car-1")]})
    fake.delays["car-1"] = 0.1
    rides = [ride("car-1"), ride("car-2"), ride("auto-3", auto=True)]

    documents = asyncio.run(resolver_for(fake).fetch_documents(CREDENTIAL, rides))

    assert fake.completed[-1] == "car-1"
    assert [d.ride_id for d in documents] == ["car-1", "car-2", "auto-3"]
    assert all(d.ok for d in documents)


def test_malformed_download_url_does_not_abort_siblings():
    fake = FakeUber(invoices={"car-1": ["https://[not-an-ip]/files/car-1.pdf"]})
    rides = [ride("car-1"), ride("car-2"), ride("auto-3", auto=True)]

    documents = asyncio.run(resolver_for(fake).fetch_documents(CREDENTIAL, rides))

    assert [d.ok for d in documents] == [False, True, True]
    assert documents[0].error.startswith("Failed to fetch PDF")
    assert documents[0].strategy == "invoice"
