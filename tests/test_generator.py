from __future__ import annotations

import asyncio
import json

import pytest

from autobuilder.generator import PARSE_FAILED_NOTE, ArtifactGenerator, offline_artifacts, parse_failure_artifacts
from autobuilder.models import AttachmentInfo


class FakeBackend:
    def __init__(self, reply: str = "", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def _generate(backend, brief="todo app", attachments=()):
    return asyncio.run(ArtifactGenerator(backend).generate(brief, list(attachments)))


def test_no_backend_returns_single_file_with_brief_in_readme():
    artifacts = _generate(None, brief="a <b>todo</b> app")

    assert len(artifacts.files) == 1
    assert artifacts.files[0].path == "index.html"
    assert "a <b>todo</b> app" in artifacts.readme
    assert "a &lt;b&gt;todo&lt;/b&gt; app" in artifacts.files[0].content
    assert "Generated at" in artifacts.files[0].content


def test_malformed_backend_output_uses_distinguishable_fallback():
    backend = FakeBackend(reply="Sure! Here is your app: <html>...</html>")

    artifacts = _generate(backend)
    offline = _generate(None)

    assert len(artifacts.files) == 1
    assert PARSE_FAILED_NOTE in artifacts.readme
    assert PARSE_FAILED_NOTE not in offline.readme
    assert artifacts.readme != offline.readme
    assert "todo app" in artifacts.files[0].content


def test_fallbacks_differ_only_in_explanatory_text():
    offline = offline_artifacts("brief text")
    failed = parse_failure_artifacts("brief text")

    assert [f.path for f in offline.files] == [f.path for f in failed.files]
    assert "brief text" in offline.files[0].content
    assert "brief text" in failed.files[0].content
    assert offline.files[0].content != failed.files[0].content


def test_valid_backend_output_is_used_verbatim():
    reply = json.dumps(
        {
            "files": [
                {"path": "index.html", "content": "<h1>Todo</h1>"},
                {"path": "app.js", "content": "console.log(1)"},
            ],
            "readme": "# Todo\n",
        }
    )

    artifacts = _generate(FakeBackend(reply=reply))

    assert [(f.path, f.content) for f in artifacts.files] == [
        ("index.html", "<h1>Todo</h1>"),
        ("app.js", "console.log(1)"),
    ]
    assert artifacts.readme == "# Todo\n"


def test_fenced_json_is_accepted():
    body = json.dumps({"files": [{"path": "index.html", "content": "ok"}], "readme": "# R"})

    artifacts = _generate(FakeBackend(reply=f"```json\n{body}\n```"))

    assert artifacts.files[0].content == "ok"
    assert artifacts.readme == "# R"


def test_missing_readme_defaults_to_brief():
    reply = json.dumps({"files": [{"path": "index.html", "content": "ok"}]})

    artifacts = _generate(FakeBackend(reply=reply), brief="quiz game")

    assert artifacts.readme.startswith("# Auto-generated app")
    assert "quiz game" in artifacts.readme


def test_wrong_shape_falls_back():
    for reply in (
        json.dumps({"files": []}),
        json.dumps({"files": [{"path": "index.html"}]}),
        json.dumps(["index.html"]),
    ):
        artifacts = _generate(FakeBackend(reply=reply))
        assert PARSE_FAILED_NOTE in artifacts.readme


def test_backend_error_does_not_escape():
    artifacts = _generate(FakeBackend(error=RuntimeError("rate limited")))

    assert len(artifacts.files) == 1
    assert PARSE_FAILED_NOTE in artifacts.readme


def test_prompt_carries_brief_and_attachment_metadata():
    backend = FakeBackend(reply="garbage")
    info = AttachmentInfo(name="sales.csv", mime_type="text/csv", size=12)

    _generate(backend, brief="sum the sales", attachments=[info])

    prompt = backend.prompts[0]
    assert "sum the sales" in prompt
    assert "sales.csv" in prompt
    assert '"files"' in prompt


def test_rooted_and_dotted_paths_are_made_relative():
    reply = json.dumps(
        {
            "files": [
                {"path": "/index.html", "content": "<h1>Todo</h1>"},
                {"path": "./js/app.js", "content": "console.log(1)"},
            ],
            "readme": "# Todo\n",
        }
    )

    artifacts = _generate(FakeBackend(reply=reply))

    assert [f.path for f in artifacts.files] == ["index.html", "js/app.js"]
    assert artifacts.readme == "# Todo\n"


@pytest.mark.parametrize("path", ["../x", "assets/../../x", "/", ".git/config", ""])
def test_paths_leaving_the_tree_fall_back(path):
    reply = json.dumps({"files": [{"path": path, "content": "x"}]})

    artifacts = _generate(FakeBackend(reply=reply))

    assert [f.path for f in artifacts.files] == ["index.html"]
    assert PARSE_FAILED_NOTE in artifacts.readme
