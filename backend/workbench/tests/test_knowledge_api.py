import json
from unittest.mock import Mock, patch

import requests
from django.test import TestCase

from workbench.knowledge import chunk_text, html_to_text, search_chunks
from workbench.models import KbChunk, KbSource, Org, Playbook


def _page(html, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.text = html
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    else:
        response.raise_for_status.return_value = None
    return response


class KnowledgeHelperTests(TestCase):
    def test_html_to_text_drops_scripts_and_collapses_whitespace(self):
        html = "<html><head><style>p{}</style><script>var x=1;</script></head><body><p>Hello\n   world</p></body></html>"
        self.assertEqual(html_to_text(html), "Hello world")

    def test_chunk_text_splits_fixed_windows(self):
        chunks = chunk_text("a" * 2500)
        self.assertEqual([len(chunk) for chunk in chunks], [1200, 1200, 100])
        self.assertEqual(chunk_text(""), [])


class KnowledgeApiTests(TestCase):
    def setUp(self):
        self.org = Org.objects.create(id="demo", name="Demo Org")

    def _post(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def _register(self, url="https://docs.example.com/guide"):
        response = self._post("/api/kb/sources", {"url": url})
        self.assertEqual(response.status_code, 201)
        return response.json()["source"]

    def test_register_source_is_pending(self):
        source = self._register()
        self.assertEqual(source["status"], "pending")
        self.assertEqual(source["org"], "demo")
        listing = self.client.get("/api/kb/sources")
        self.assertEqual(len(listing.json()["sources"]), 1)

    def test_register_source_requires_url(self):
        self.assertEqual(self._post("/api/kb/sources", {}).status_code, 400)

    def test_register_source_unknown_org(self):
        self.assertEqual(self._post("/api/kb/sources", {"url": "https://x.test", "org_id": "nope"}).status_code, 404)

    @patch("workbench.knowledge.requests.get")
    def test_ingest_chunks_page_text(self, get_mock):
        get_mock.return_value = _page("<body>" + "b" * 2500 + "</body>")
        source = self._register()
        response = self._post("/api/kb/ingest", {"source_id": source["id"]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "chunks": 3})
        chunks = list(KbChunk.objects.filter(source_id=source["id"]).order_by("position"))
        self.assertEqual([len(chunk.text) for chunk in chunks], [1200, 1200, 100])
        self.assertTrue(all(chunk.url == "https://docs.example.com/guide" for chunk in chunks))
        stored = KbSource.objects.get(id=source["id"])
        self.assertEqual(stored.status, "ingested")
        self.assertIsNotNone(stored.ingested_at)
        self.assertEqual(get_mock.call_args.kwargs["headers"]["User-Agent"], "AI-Workbench/0.1")

    @patch("workbench.knowledge.requests.get")
    def test_reingest_replaces_chunks(self, get_mock):
        source = self._register()
        get_mock.return_value = _page("<p>" + "c" * 2500 + "</p>")
        self._post("/api/kb/ingest", {"source_id": source["id"]})
        get_mock.return_value = _page("<p>short page</p>")
        response = self._post("/api/kb/ingest", {"source_id": source["id"]})
        self.assertEqual(response.json()["chunks"], 1)
        self.assertEqual(KbChunk.objects.filter(source_id=source["id"]).count(), 1)

    def test_ingest_unknown_source_is_not_found(self):
        response = self._post("/api/kb/ingest", {"source_id": "00000000-0000-0000-0000-000000000000"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "not found")

    def test_ingest_requires_source_id(self):
        self.assertEqual(self._post("/api/kb/ingest", {}).status_code, 400)

    @patch("workbench.knowledge.requests.get")
    def test_ingest_fetch_failure_marks_source_failed(self, get_mock):
        get_mock.return_value = _page("", status_code=500)
        source = self._register()
        response = self._post("/api/kb/ingest", {"source_id": source["id"]})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(KbSource.objects.get(id=source["id"]).status, "failed")
        self.assertFalse(KbChunk.objects.exists())

    def test_search_returns_matching_chunks_for_org(self):
        source = KbSource.objects.create(org=self.org, url="https://docs.example.com/a", status="ingested")
        KbChunk.objects.create(source=source, url=source.url, text="Deploy the service with blue green rollout", position=0)
        KbChunk.objects.create(source=source, url=source.url, text="Billing questions go to finance", position=1)
        other = Org.objects.create(id="other", name="Other")
        other_source = KbSource.objects.create(org=other, url="https://other.test", status="ingested")
        KbChunk.objects.create(source=other_source, url=other_source.url, text="deploy elsewhere", position=0)

        response = self._post("/api/search", {"query": "deploy rollout"})
        self.assertEqual(response.status_code, 200)
        context = response.json()["context"]
        self.assertEqual(len(context), 1)
        self.assertEqual(context[0]["url"], "https://docs.example.com/a")
        self.assertIn("blue green", context[0]["text"])
        self.assertEqual(set(context[0].keys()), {"id", "url", "text"})

    def test_search_limits_results(self):
        source = KbSource.objects.create(org=self.org, url="https://docs.example.com/a", status="ingested")
        for index in range(12):
            KbChunk.objects.create(source=source, url=source.url, text=f"runbook step {index}", position=index)
        self.assertEqual(len(search_chunks(org=self.org, query="runbook")), 8)

    def test_blank_search_returns_empty_context(self):
        response = self._post("/api/search", {"query": "   "})
        self.assertEqual(response.json(), {"context": []})

    def test_playbook_create_and_search(self):
        response = self._post(
            "/api/playbooks",
            {"title": "Incident response", "tags": ["oncall", "pager"], "body_md": "Page the owner first."},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["playbook"]["tags"], ["oncall", "pager"])
        self._post("/api/playbooks", {"title": "Release checklist", "body_md": "Tag and ship."})

        by_tag = self.client.get("/api/playbooks", {"q": "oncall"}).json()["results"]
        self.assertEqual([row["title"] for row in by_tag], ["Incident response"])
        by_body = self.client.get("/api/playbooks", {"q": "ship"}).json()["results"]
        self.assertEqual([row["title"] for row in by_body], ["Release checklist"])
        self.assertEqual(self.client.get("/api/playbooks").json()["results"], [])
        self.assertEqual(Playbook.objects.get(title="Incident response").tags_text, "oncall pager")

    def test_playbook_rejects_blank_title(self):
        response = self._post("/api/playbooks", {"title": "  \t ", "body_md": "blank"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Playbook.objects.exists())

    def test_playbook_requires_title(self):
        response = self._post("/api/playbooks", {"body_md": "no title"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Playbook.objects.exists())
