import json
import os
from unittest.mock import Mock, patch

from django.test import Client, TestCase

from workbench.models import Conversation, Org, Project, StylePreset
from workbench.styles import ensure_default_style_presets, merge_style, resolve_style_preset


def _stream_response(chunks):
    response = Mock()
    response.status_code = 200
    response.iter_content.return_value = iter(chunks)
    return response


class StylePresetTests(TestCase):
    def setUp(self):
        org = Org.objects.create(id="demo", name="Demo Org")
        self.project = Project.objects.create(id="proj", org=org, name="Demo Project")
        ensure_default_style_presets()

    def test_seeding_is_idempotent(self):
        ensure_default_style_presets()
        self.assertEqual(StylePreset.objects.count(), 5)
        concise = StylePreset.objects.get(slug="concise")
        self.assertEqual(concise.params_json["max_tokens_hint"], "short")

    def test_merge_style_prepends_tone_and_maps_hint(self):
        preset = StylePreset.objects.get(slug="concise")
        messages, params = merge_style(preset, [{"role": "user", "content": "hi"}], None)
        self.assertEqual(messages[0], {"role": "system", "content": preset.tone_sys})
        self.assertEqual(messages[1], {"role": "user", "content": "hi"})
        self.assertEqual(params, {"max_tokens": 300})

    def test_merge_style_caller_params_win(self):
        preset = StylePreset.objects.get(slug="concise")
        _, params = merge_style(preset, [], {"max_tokens": 500, "temperature": 0.9})
        self.assertEqual(params, {"max_tokens": 500, "temperature": 0.9})

    def test_merge_style_auto_hint_sets_no_limit(self):
        preset = StylePreset.objects.get(slug="normal")
        _, params = merge_style(preset, [], None)
        self.assertNotIn("max_tokens", params)

    def test_merge_style_without_preset_passes_through(self):
        messages = [{"role": "user", "content": "hi"}]
        merged, params = merge_style(None, messages, {"top_p": 0.5})
        self.assertEqual(merged, messages)
        self.assertEqual(params, {"top_p": 0.5})

    def test_override_slug_beats_conversation_preset(self):
        Conversation.objects.create(
            id="c1", project=self.project, style_preset=StylePreset.objects.get(slug="formal")
        )
        self.assertEqual(resolve_style_preset(conversation_id="c1").slug, "formal")
        self.assertEqual(resolve_style_preset(style_override_slug="learning", conversation_id="c1").slug, "learning")
        self.assertIsNone(resolve_style_preset(style_override_slug="missing", conversation_id="c1"))
        self.assertIsNone(resolve_style_preset(conversation_id="unknown"))

    def test_styles_endpoint_rejects_post_with_csrf_enforced(self):
        response = Client(enforce_csrf_checks=True).post("/api/styles")
        self.assertEqual(response.status_code, 405)

    def test_styles_endpoint_lists_presets_by_name(self):
        response = self.client.get("/api/styles")
        self.assertEqual(response.status_code, 200)
        names = [item["name"] for item in response.json()["items"]]
        self.assertEqual(names, ["Concise", "Explanatory", "Formal", "Learning", "Normal"])

    def test_assign_style_creates_then_updates_conversation(self):
        url = "/api/conversations/conv-42/style"
        response = self.client.post(url, data=json.dumps({"style_slug": "learning"}), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["ok"])
        self.assertEqual(response.json()["conversation"]["style_slug"], "learning")
        self.assertEqual(Conversation.objects.get(id="conv-42").project_id, "proj")

        response = self.client.post(url, data=json.dumps({"style_slug": "formal"}), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Conversation.objects.get(id="conv-42").style_preset.slug, "formal")
        self.assertEqual(Conversation.objects.count(), 1)

    def test_assign_unknown_style_is_not_found(self):
        response = self.client.post(
            "/api/conversations/conv-1/style",
            data=json.dumps({"style_slug": "shouty"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "unknown style")
        self.assertFalse(Conversation.objects.exists())

    def test_assign_style_requires_slug(self):
        response = self.client.post("/api/conversations/conv-1/style", data="{}", content_type="application/json")
        self.assertEqual(response.status_code, 400)


@patch.dict(os.environ, {"WORKBENCH_OPENROUTER_API_KEY": "sk-test"})
class ChatApiTests(TestCase):
    def setUp(self):
        org = Org.objects.create(id="demo", name="Demo Org")
        self.project = Project.objects.create(id="proj", org=org, name="Demo Project")
        ensure_default_style_presets()

    def _chat(self, payload):
        return self.client.post("/api/chat", data=json.dumps(payload), content_type="application/json")

    @patch("workbench.router.requests.post")
    def test_chat_relays_upstream_stream(self, post_mock):
        upstream = _stream_response([b'data: {"delta":"Hel"}\n\n', b"", b'data: {"delta":"lo"}\n\n', b"data: [DONE]\n\n"])
        post_mock.return_value = upstream
        response = self._chat({"messages": [{"role": "user", "content": "hi"}]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/event-stream")
        self.assertEqual(response["Cache-Control"], "no-cache")
        body = b"".join(response.streaming_content)
        self.assertEqual(body, b'data: {"delta":"Hel"}\n\ndata: {"delta":"lo"}\n\ndata: [DONE]\n\n')
        upstream.close.assert_called_once()
        kwargs = post_mock.call_args.kwargs
        self.assertTrue(kwargs["stream"])
        self.assertTrue(kwargs["json"]["stream"])
        self.assertEqual(kwargs["json"]["model"], "openai/gpt-4.1-mini")

    @patch("workbench.router.requests.post")
    def test_chat_applies_override_style(self, post_mock):
        post_mock.return_value = _stream_response([])
        self._chat({"messages": [{"role": "user", "content": "hi"}], "style_override_slug": "concise"})
        sent = post_mock.call_args.kwargs["json"]
        self.assertEqual(sent["max_tokens"], 300)
        self.assertEqual(sent["messages"][0]["role"], "system")

    @patch("workbench.router.requests.post")
    def test_chat_caller_max_tokens_wins(self, post_mock):
        post_mock.return_value = _stream_response([])
        self._chat(
            {
                "messages": [{"role": "user", "content": "hi"}],
                "style_override_slug": "concise",
                "params": {"max_tokens": 500},
            }
        )
        self.assertEqual(post_mock.call_args.kwargs["json"]["max_tokens"], 500)

    @patch("workbench.router.requests.post")
    def test_chat_uses_conversation_style(self, post_mock):
        post_mock.return_value = _stream_response([])
        Conversation.objects.create(
            id="c7", project=self.project, style_preset=StylePreset.objects.get(slug="explanatory")
        )
        self._chat({"messages": [{"role": "user", "content": "hi"}], "conversation_id": "c7", "model": "x/y"})
        sent = post_mock.call_args.kwargs["json"]
        self.assertEqual(sent["max_tokens"], 1600)
        self.assertEqual(sent["model"], "x/y")

    @patch("workbench.router.requests.post")
    def test_chat_upstream_error_is_bad_gateway(self, post_mock):
        post_mock.return_value = _stream_response([])
        post_mock.return_value.status_code = 401
        response = self._chat({"messages": [{"role": "user", "content": "hi"}]})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "OpenRouter 401")

    def test_chat_rejects_invalid_messages(self):
        response = self._chat({"messages": [{"role": "robot", "content": "hi"}]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "invalid payload")

    @patch("workbench.router.requests.post")
    def test_chat_without_key_is_server_error(self, post_mock):
        with patch.dict(os.environ, {"WORKBENCH_OPENROUTER_API_KEY": "", "OPENROUTER_API_KEY": "", "OPENROUTER_KEY": ""}):
            response = self._chat({"messages": [{"role": "user", "content": "hi"}]})
        self.assertEqual(response.status_code, 500)
        post_mock.assert_not_called()
