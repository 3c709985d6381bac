"""Tests for the command-line entry point."""

import json
from unittest.mock import patch

import pytest
from conftest import newsletter_response
from test_history import history_payload

from sme_history.cli import build_company, build_parser, load_company_file, main, parse_types
from sme_history.clients.base import LLMResponse
from sme_history.config import get_settings
from sme_history.documents import DocumentType


class TestArguments:
    """Tests for argument helpers."""

    def test_parse_types_aliases(self):
        """Test type aliases map to document types without duplicates."""
        assert parse_types("news, J, bs, JOURNAL, xx") == [
            DocumentType.NEWSLETTER,
            DocumentType.JE,
            DocumentType.BS,
        ]

    def test_parse_types_default(self):
        """Test newsletters and journals are the default."""
        assert parse_types(None) == [DocumentType.NEWSLETTER, DocumentType.JE]

    def test_load_yaml_company(self, tmp_path):
        """Test a YAML company file is read."""
        path = tmp_path / "company.yaml"
        path.write_text(
            "name: 株式会社ヤマル\nindustry: 小売業\nfoundedYear: 1995\ncurrentYear: 2024\n",
            encoding="utf-8",
        )

        data = load_company_file(path)

        assert data["name"] == "株式会社ヤマル"
        assert data["foundedYear"] == 1995

    def test_company_file_overrides(self, tmp_path):
        """Test command-line values override the company file."""
        path = tmp_path / "company.json"
        path.write_text(
            json.dumps({"name": "A", "industry": "IT", "foundedYear": 2001}), encoding="utf-8"
        )
        args = build_parser().parse_args(
            ["--company-file", str(path), "--company-name", "B", "--to-year", "2010"]
        )

        company = build_company(args)

        assert company.name == "B"
        assert company.founded_year == 2001
        assert company.current_year == 2010
        assert company.ceo_history[0].name == "代表取締役"

    def test_company_file_must_be_object(self, tmp_path):
        """Test a non-object company file is rejected."""
        path = tmp_path / "company.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(ValueError):
            load_company_file(path)


class TestMain:
    """End-to-end tests for main()."""

    def test_generates_and_writes_documents(self, tmp_path, scripted_client, capsys):
        """Test a run writes JSON statements and Markdown newsletters."""
        client = scripted_client(
            LLMResponse(text=json.dumps(history_payload(2020, 2021))),
            newsletter_response(2020, 2021),
        )
        argv = [
            "--from-year", "2020",
            "--to-year", "2021",
            "--types", "BS,NEWS",
            "--save-dir", str(tmp_path),
        ]

        with patch("sme_history.cli.create_client", return_value=client):
            code = main(argv)

        assert code == 0
        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == ["BS-2020.json", "BS-2021.json", "NEWSLETTER-2020.md", "NEWSLETTER-2021.md"]
        bs = json.loads((tmp_path / "BS-2020.json").read_text(encoding="utf-8"))
        assert bs["content"]["sections"][0]["title"] == "資産の部"
        newsletter = (tmp_path / "NEWSLETTER-2020.md").read_text(encoding="utf-8")
        assert newsletter.startswith("# 社内報 2020年")
        assert "progress: " in capsys.readouterr().out

    def test_prompt_file(self, tmp_path, scripted_client, monkeypatch):
        """Test a raw prompt file is sent verbatim and the response saved."""
        monkeypatch.setattr(get_settings(), "save_prompt", False)
        prompt = tmp_path / "prompt.txt"
        prompt.write_text("テストプロンプト", encoding="utf-8")
        out_dir = tmp_path / "out"
        client = scripted_client(LLMResponse(text="応答"))

        with patch("sme_history.cli.create_client", return_value=client):
            code = main(
                ["--prompt-file", str(prompt), "--save-dir", str(out_dir), "--save-prompt"]
            )

        assert code == 0
        assert (out_dir / "prompt_response.txt").read_text(encoding="utf-8") == "応答"
        assert (out_dir / "sent_prompt.txt").read_text(encoding="utf-8") == "テストプロンプト"
        client.generate_content.assert_awaited_once_with(contents="テストプロンプト")

    def test_history_failure_exit_code(self, tmp_path, scripted_client):
        """Test a pipeline error exits with status 2."""
        client = scripted_client(LLMResponse(text="no history"))

        with patch("sme_history.cli.create_client", return_value=client):
            code = main(["--save-dir", str(tmp_path)])

        assert code == 2
