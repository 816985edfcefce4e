"""End-to-end tests for GET /api/FileProxy against fake downstream services."""

import httpx
import pytest

from file_proxy.core.exceptions import AuthProviderError
from tests.fixtures.downstream import (
    DATAVERSE_HOST,
    DATAVERSE_SCOPE,
    GRAPH_HOST,
    GRAPH_SCOPE,
)
from tests.fixtures.principals import (
    USER_OBJECT_ID,
    USER_UPN,
    encode_principal,
    principal_header,
)

URL = "/api/FileProxy"
HEADERS = {"X-MS-CLIENT-PRINCIPAL": principal_header()}

RECORD_ID = "8d1a6c2e-1111-2222-3333-444455556666"
PDF_BYTES = b"%PDF-1.7 expense receipt"
ITEM_PATH = "/drives/drive-1/items/item-1"
SITE_PATH = "/sites/contoso.sharepoint.com:/sites/Finance"
ENTRY_PATH = "/sites/site-1/lists/list-1/items/42"
RECORD_PATH = f"/crm_expenses({RECORD_ID})"
ITEM_QUERY = {"driveId": "drive-1", "itemId": "item-1"}
ENTRY_QUERY = {
    "mode": "spitem",
    "siteHost": "contoso.sharepoint.com",
    "sitePath": "/sites/Finance",
    "listTitle": "Receipts",
    "spItemId": "42",
}


def setup_file(downstream, record_field_value=f"{{{RECORD_ID}}}") -> None:
    """Register one SharePoint file reachable by both addressing schemes."""
    item = {
        "id": "item-1",
        "name": "recibo.pdf",
        "file": {"mimeType": "application/pdf"},
        "parentReference": {"driveId": "drive-1"},
    }
    fields = {"CrmExpenseId": record_field_value} if record_field_value else {}
    downstream.graph(ITEM_PATH, httpx.Response(200, json=item))
    downstream.graph(f"{ITEM_PATH}/listItem/fields", httpx.Response(200, json=fields))
    downstream.graph(f"{ITEM_PATH}/content", httpx.Response(200, content=PDF_BYTES))
    downstream.graph(SITE_PATH, httpx.Response(200, json={"id": "site-1"}))
    downstream.graph(
        "/sites/site-1/lists",
        httpx.Response(
            200, json={"value": [{"id": "list-1", "displayName": "Receipts"}]}
        ),
    )
    downstream.graph(
        ENTRY_PATH, httpx.Response(200, json={"id": "42", "driveItem": item})
    )
    downstream.graph(f"{ENTRY_PATH}/fields", httpx.Response(200, json=fields))


def setup_principal(downstream, rows=None) -> None:
    """Register the systemuser lookup; the same rows answer every query."""
    if rows is None:
        rows = [{"systemuserid": "su-1", "isdisabled": False}]
    downstream.dataverse("/systemusers", httpx.Response(200, json={"value": rows}))


def setup_record(downstream, response=None) -> None:
    downstream.dataverse(
        RECORD_PATH,
        response or httpx.Response(200, json={"crm_expenseid": RECORD_ID}),
    )


def setup_allowed(downstream) -> None:
    setup_file(downstream)
    setup_principal(downstream)
    setup_record(downstream)


class TestAuthentication:
    """Requests without an identity assertion."""

    def test_missing_identity_header_returns_401(self, client, downstream):
        """No header means 401 before any downstream call."""
        setup_allowed(downstream)

        response = client.get(URL, params=ITEM_QUERY)

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("text/plain")
        assert "not authenticated" in response.text.lower()
        assert downstream.requests == []

    def test_identity_without_object_id_returns_401(self, client, downstream):
        """An assertion lacking the object id is rejected."""
        response = client.get(
            URL,
            params=ITEM_QUERY,
            headers={"X-MS-CLIENT-PRINCIPAL": principal_header(object_id=None)},
        )

        assert response.status_code == 401
        assert downstream.requests == []

    def test_other_identity_headers_are_ignored(self, client, downstream):
        """Only the client principal header establishes identity."""
        response = client.get(
            URL,
            params=ITEM_QUERY,
            headers={"X-MS-CLIENT-PRINCIPAL-ID": USER_OBJECT_ID},
        )

        assert response.status_code == 401

    @pytest.mark.parametrize(
        "payload",
        [
            {"claims": [{"typ": "oid", "val": 12345}]},
            {"claims": [{"typ": ["oid"], "val": USER_OBJECT_ID}]},
            {"claims": 5},
        ],
    )
    def test_malformed_identity_returns_401(self, client, downstream, payload):
        """Claims of the wrong shape are rejected as unauthenticated."""
        response = client.get(
            URL,
            params=ITEM_QUERY,
            headers={"X-MS-CLIENT-PRINCIPAL": encode_principal(payload)},
        )

        assert response.status_code == 401
        assert downstream.requests == []


class TestParameters:
    """Request parameter validation."""

    def test_missing_item_parameters_returns_400(self, client, downstream):
        """Drive addressing needs both driveId and itemId."""
        response = client.get(URL, params={"driveId": "drive-1"}, headers=HEADERS)

        assert response.status_code == 400
        assert "driveId" in response.text
        assert downstream.requests == []

    def test_missing_list_selector_returns_400(self, client, downstream):
        """List addressing needs listId or listTitle."""
        query = {k: v for k, v in ENTRY_QUERY.items() if k != "listTitle"}

        response = client.get(URL, params=query, headers=HEADERS)

        assert response.status_code == 400

    def test_list_defaults_come_from_configuration(
        self, client, downstream, test_settings
    ):
        """siteHost, sitePath and listId default to configured values."""
        test_settings.default_site_host = "contoso.sharepoint.com"
        test_settings.default_site_path = "/sites/Finance"
        test_settings.default_list_id = "list-1"
        setup_allowed(downstream)

        response = client.get(
            URL, params={"mode": "spitem", "spItemId": "42"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.content == PDF_BYTES
        assert "/v1.0/sites/site-1/lists" not in downstream.paths(GRAPH_HOST)


class TestAllowedDownload:
    """Authorized callers receive the file."""

    def test_container_item_download(self, client, downstream):
        """Default mode streams the document store bytes with headers."""
        setup_allowed(downstream)

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 200
        assert response.content == PDF_BYTES
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'inline; filename="recibo.pdf"'
        assert response.headers["cache-control"] == "private, max-age=60"
        assert response.headers["content-length"] == str(len(PDF_BYTES))
        assert "x-request-id" in response.headers

    def test_record_read_is_impersonated(self, client, downstream):
        """The record is read as the resolved systemuser."""
        setup_allowed(downstream)

        client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        record_requests = [
            r for r in downstream.requests if r.url.path.endswith(RECORD_PATH)
        ]
        assert len(record_requests) == 1
        assert record_requests[0].headers["MSCRMCallerID"] == "su-1"

    def test_tokens_match_their_services(self, client, downstream):
        """Graph calls carry the Graph token and Dataverse calls its own."""
        setup_allowed(downstream)

        client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        for request in downstream.requests:
            expected_scope = GRAPH_SCOPE if request.url.host == GRAPH_HOST else DATAVERSE_SCOPE
            assert request.headers["Authorization"] == f"Bearer token:{expected_scope}"

    def test_attachment_disposition_from_configuration(
        self, client, downstream, test_settings
    ):
        """The configured disposition mode is used."""
        test_settings.default_disposition = "attachment"
        setup_allowed(downstream)

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.headers["content-disposition"].startswith("attachment; ")

    def test_missing_mime_type_defaults_to_octet_stream(self, client, downstream):
        """Files without a MIME type are served as octet-stream."""
        setup_allowed(downstream)
        downstream.graph(
            ITEM_PATH, httpx.Response(200, json={"id": "item-1", "name": "x.bin"})
        )

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.headers["content-type"] == "application/octet-stream"

    def test_text_mime_type_is_served_exactly(self, client, downstream):
        """Text files keep their resolved type without an added charset."""
        setup_allowed(downstream)
        downstream.graph(
            ITEM_PATH,
            httpx.Response(
                200,
                json={"id": "item-1", "name": "notes.txt", "file": {"mimeType": "text/plain"}},
            ),
        )

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain"
        assert response.content == PDF_BYTES

    def test_addressing_schemes_are_equivalent(self, client, downstream):
        """Both schemes for the same file return identical bodies and types."""
        setup_allowed(downstream)

        by_item = client.get(URL, params=ITEM_QUERY, headers=HEADERS)
        by_entry = client.get(URL, params=ENTRY_QUERY, headers=HEADERS)

        assert by_item.status_code == by_entry.status_code == 200
        assert by_item.content == by_entry.content
        assert by_item.headers["content-type"] == by_entry.headers["content-type"]

    def test_repeated_requests_resolve_independently(self, client, downstream):
        """Nothing is cached between requests."""
        setup_allowed(downstream)

        first = client.get(URL, params=ITEM_QUERY, headers=HEADERS)
        second = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert first.status_code == second.status_code == 200
        dataverse_paths = downstream.paths(DATAVERSE_HOST)
        assert dataverse_paths.count("/api/data/v9.2/systemusers") == 2
        assert dataverse_paths.count(f"/api/data/v9.2{RECORD_PATH}") == 2


class TestDeniedDownload:
    """Callers who cannot read the linked record."""

    def test_unlinked_file_returns_403(self, client, downstream):
        """A file without record link is never served."""
        setup_file(downstream, record_field_value=None)
        setup_principal(downstream)
        setup_record(downstream)

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 403
        assert downstream.paths(DATAVERSE_HOST) == []
        assert f"/v1.0{ITEM_PATH}/content" not in downstream.paths(GRAPH_HOST)

    def test_unreadable_fields_return_403(self, client, downstream):
        """Unavailable custom fields in drive addressing deny access."""
        setup_allowed(downstream)
        downstream.graph(
            f"{ITEM_PATH}/listItem/fields", httpx.Response(403, json={"error": {}})
        )

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 403

    def test_no_principal_returns_403(self, client, downstream):
        """No systemuser by object id nor by UPN means 403."""
        setup_file(downstream)
        setup_principal(downstream, rows=[])
        setup_record(downstream)

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 403
        lookups = [
            r.url.params["$filter"]
            for r in downstream.requests
            if r.url.path.endswith("/systemusers")
        ]
        assert lookups == [
            f"azureactivedirectoryobjectid eq {USER_OBJECT_ID}",
            f"domainname eq '{USER_UPN}'",
        ]
        assert f"/api/data/v9.2{RECORD_PATH}" not in downstream.paths(DATAVERSE_HOST)

    def test_disabled_principal_returns_403(self, client, downstream):
        """Disabled users are refused even if the record is readable."""
        setup_file(downstream)
        setup_principal(downstream, rows=[{"systemuserid": "su-1", "isdisabled": True}])
        setup_record(downstream)

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 403

    def test_record_forbidden_returns_403(self, client, downstream):
        """A record the user cannot read is denied."""
        setup_file(downstream)
        setup_principal(downstream)
        setup_record(downstream, httpx.Response(403, json={"error": {}}))

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 403

    def test_record_not_found_returns_404(self, client, downstream):
        """A linked record that does not exist returns 404."""
        setup_file(downstream)
        setup_principal(downstream)
        setup_record(downstream, httpx.Response(404, json={"error": {}}))

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 404
        assert "record" in response.text.lower()


class TestNotFound:
    """Missing SharePoint resources."""

    def test_unknown_list_title_returns_404_before_entry_lookup(
        self, client, downstream
    ):
        """A list title without exact match stops before the entry lookup."""
        setup_allowed(downstream)

        response = client.get(
            URL, params={**ENTRY_QUERY, "listTitle": "Invoices"}, headers=HEADERS
        )

        assert response.status_code == 404
        assert f"/v1.0{ENTRY_PATH}" not in downstream.paths(GRAPH_HOST)

    def test_missing_drive_item_returns_404(self, client, downstream):
        """An unknown drive item is 404."""
        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 404


class TestUpstreamFailures:
    """Unexpected downstream failures."""

    def test_content_failure_returns_500(self, client, downstream):
        """A failed content download is a 500 with a short text body."""
        setup_allowed(downstream)
        downstream.graph(f"{ITEM_PATH}/content", httpx.Response(503, text="busy"))

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/plain")
        assert "busy" not in response.text

    def test_record_server_error_returns_500(self, client, downstream):
        """A 5xx on the impersonated read is fatal."""
        setup_file(downstream)
        setup_principal(downstream)
        setup_record(downstream, httpx.Response(500, json={"error": {}}))

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 500

    def test_token_failure_returns_500(self, client, downstream, token_provider):
        """A credential failure is a 500 and no downstream call is made."""
        token_provider.get_token.side_effect = AuthProviderError("rejected")

        response = client.get(URL, params=ITEM_QUERY, headers=HEADERS)

        assert response.status_code == 500
        assert downstream.requests == []

    def test_list_fields_failure_returns_500(self, client, downstream):
        """In list addressing, failed custom fields are fatal."""
        setup_allowed(downstream)
        downstream.graph(f"{ENTRY_PATH}/fields", httpx.Response(500, text="err"))

        response = client.get(URL, params=ENTRY_QUERY, headers=HEADERS)

        assert response.status_code == 500


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client, downstream):
        """Health check needs no identity and makes no downstream call."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert downstream.requests == []

    def test_responses_carry_correlation_and_timing_headers(self, client):
        """Every response is tagged with a request id and its duration."""
        first = client.get("/health")
        second = client.get("/api/FileProxy")

        assert len(first.headers["X-Request-ID"]) == 8
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]
        assert float(second.headers["X-Response-Time-Ms"]) >= 0
