"""
Tests for template parsing, rendering, and catalog loading.
"""

from pathlib import Path

import pytest

from groundwork.core.errors import TemplateError
from groundwork.core.services.detectors import build_schema, default_detectors
from groundwork.core.services.facts import FactStore
from groundwork.core.services.templating.catalog import builtin_catalog_dir, load_catalog
from groundwork.core.services.templating.parser import Conditional, Placeholder, parse_template
from groundwork.core.services.templating.renderer import render, stringify
from tests.conftest import make_store, write_files


def _render(text: str, store: FactStore | None = None) -> str:
    return render(parse_template(text, "t"), store or make_store()).content


# ── Parser ──────────────────────────────────────────────────────────


class TestParser:
    def test_placeholder_with_default(self):
        template = parse_template("Lint: {{ commands.lint | not configured }}", "t")
        placeholder = template.nodes[1]
        assert isinstance(placeholder, Placeholder)
        assert placeholder.key == "commands.lint"
        assert placeholder.default == "not configured"

    def test_front_matter(self):
        template = parse_template(
            "---\ntarget: docs/X.md\nrequired: [project.name]\ndescription: x\n---\nBody {{ project.name }}\n",
            "x.tmpl",
        )
        assert template.target == "docs/X.md"
        assert template.required == ["project.name"]
        assert template.body == "Body {{ project.name }}\n"

    def test_keys(self):
        template = parse_template(
            "---\nrequired: [project.name]\n---\n{{#if vcs.git}}{{ commands.test }}{{else}}{{ paths.tests }}{{/if}}",
            "t",
        )
        assert template.keys == {"project.name", "vcs.git", "commands.test", "paths.tests"}

    def test_one_level_of_nesting_allowed(self):
        template = parse_template("{{#if a}}{{#if b}}x{{/if}}{{/if}}", "t")
        outer = template.nodes[0]
        assert isinstance(outer, Conditional)
        assert isinstance(outer.then[0], Conditional)

    def test_deeper_nesting_rejected(self):
        with pytest.raises(TemplateError, match="one level"):
            parse_template("{{#if a}}{{#if b}}{{#if c}}x{{/if}}{{/if}}{{/if}}", "t")

    @pytest.mark.parametrize("text, message", [
        ("{{/if}}", "without a matching"),
        ("{{#if a}}open", "unclosed"),
        ("{{else}}", "outside a conditional"),
        ("{{#if a}}{{else}}{{else}}{{/if}}", "duplicate"),
        ("{{#each items}}{{/each}}", "unknown block tag"),
        ("{{ }}", "malformed tag"),
        ("{{ Project.Name }}", "invalid fact key"),
        ("{{ tools.*.available }}", "invalid fact key"),
    ])
    def test_malformed(self, text, message):
        with pytest.raises(TemplateError, match=message):
            parse_template(text, "t")

    def test_error_carries_line(self):
        with pytest.raises(TemplateError) as exc:
            parse_template("---\ntarget: a.md\n---\nline one\n{{/if}}\n", "bad.tmpl")
        assert exc.value.template == "bad.tmpl"
        assert exc.value.line == 5

    @pytest.mark.parametrize("front", [
        "---\ntarget: [unclosed\n---\n",
        "---\n- a list\n---\n",
        "---\ntarget: a.md\ncolour: red\n---\n",
    ])
    def test_bad_front_matter(self, front):
        with pytest.raises(TemplateError, match="front matter"):
            parse_template(front + "body\n", "t")


# ── Renderer ────────────────────────────────────────────────────────


class TestRender:
    def test_placeholder(self):
        assert _render("Run {{ commands.test }}.", make_store(commands__test="run-tests")) == "Run run-tests."

    def test_default_when_absent(self):
        result = render(parse_template("{{ commands.lint | none }}", "t"), make_store())
        assert result.content == "none"
        assert result.defaulted == ["commands.lint"]
        assert result.unresolved == []

    def test_null_value_counts_as_absent(self):
        store = make_store(commands__lint=None)
        assert _render("{{ commands.lint | none }}", store) == "none"

    def test_unresolved_marker(self):
        result = render(parse_template("# {{ project.name }}", "t"), make_store())
        assert result.content == "# <<unresolved:project.name>>"
        assert result.unresolved == ["project.name"]
        assert len(result.warnings) == 1

    def test_missing_required_warns(self):
        template = parse_template("---\nrequired: [project.name]\n---\n{{ project.name | x }}", "t")
        result = render(template, make_store())
        assert result.content == "x"
        assert result.missing_required

    def test_stringify(self):
        assert stringify(["a", "b"]) == "a, b"
        assert stringify(True) == "true"
        assert stringify(False) == "false"
        assert stringify(None) == ""

    def test_conditional_branches(self):
        text = "A\n{{#if vcs.git}}\nB\n{{else}}\nC\n{{/if}}\nD\n"
        assert _render(text, make_store(vcs__git=True)) == "A\nB\nD\n"
        assert _render(text, make_store(vcs__git=False)) == "A\nC\nD\n"
        assert _render(text, make_store()) == "A\nC\nD\n"

    def test_inline_conditional(self):
        text = "Hi{{#if project.name}} {{ project.name }}{{/if}}!"
        assert _render(text, make_store(project__name="Ada")) == "Hi Ada!"
        assert _render(text) == "Hi!"

    def test_empty_list_is_falsy(self):
        text = "{{#if commands.scripts}}scripts{{else}}none{{/if}}"
        assert _render(text, make_store(commands__scripts=[])) == "none"

    def test_comments_dropped(self):
        assert _render("A{{! note }}B") == "AB"
        assert _render("A\n{{! whole line }}\nB\n") == "A\nB\n"

    def test_unselected_branch_not_evaluated(self):
        result = render(parse_template("{{#if vcs.git}}{{ missing.key }}{{/if}}", "t"), make_store())
        assert result.content == ""
        assert result.unresolved == []


# ── Catalog ─────────────────────────────────────────────────────────


@pytest.fixture
def schema():
    return build_schema(default_detectors(["git"]))


class TestCatalog:
    def test_load(self, catalog_dir: Path, schema):
        catalog = load_catalog(catalog_dir, schema)
        assert [s.name for s in catalog.steps] == ["generate-overview", "generate-guide"]
        assert catalog.step("generate-overview").blocking is True
        assert catalog.step("generate-guide").blocking is False
        assert [t.target for t in catalog.templates()] == ["docs/OVERVIEW.md", "docs/GUIDE.md"]

    def test_builtin_catalog_is_valid(self, schema):
        catalog = load_catalog(builtin_catalog_dir(), schema)
        targets = {t.target for t in catalog.templates()}
        assert "ai-docs/learnings.md" in targets
        assert catalog.steps[0].blocking

    def test_unknown_key(self, catalog_dir: Path, schema):
        write_files(catalog_dir, {"guide.md.tmpl": "---\ntarget: docs/GUIDE.md\n---\n{{ team.owner }}\n"})
        with pytest.raises(TemplateError, match="unknown fact keys: team.owner"):
            load_catalog(catalog_dir, schema)

    def test_user_fact_extends_schema(self, catalog_dir: Path):
        write_files(catalog_dir, {"guide.md.tmpl": "---\ntarget: docs/GUIDE.md\n---\n{{ team.owner }}\n"})
        schema = build_schema(default_detectors(), {"team.owner": "platform"})
        assert load_catalog(catalog_dir, schema).template("guide.md.tmpl") is not None

    @pytest.mark.parametrize("target", ["/etc/passwd", "../outside.md", "docs/../../x.md", ""])
    def test_unsafe_target(self, catalog_dir: Path, schema, target):
        write_files(catalog_dir, {"guide.md.tmpl": f"---\ntarget: '{target}'\n---\nx\n"})
        with pytest.raises(TemplateError):
            load_catalog(catalog_dir, schema)

    def test_duplicate_target(self, catalog_dir: Path, schema):
        write_files(catalog_dir, {"guide.md.tmpl": "---\ntarget: docs/OVERVIEW.md\n---\nx\n"})
        with pytest.raises(TemplateError, match="also produced by"):
            load_catalog(catalog_dir, schema)

    def test_malformed_region_in_template(self, catalog_dir: Path, schema):
        write_files(catalog_dir, {"guide.md.tmpl": "---\ntarget: docs/GUIDE.md\n---\n<!-- REGION:a -->\n"})
        with pytest.raises(TemplateError, match="region"):
            load_catalog(catalog_dir, schema)

    @pytest.mark.parametrize("catalog", [
        "steps:\n  - name: verify\n    templates: [guide.md.tmpl]\n",
        "steps:\n  - name: a\n    templates: [guide.md.tmpl]\n  - name: a\n    templates: [overview.md.tmpl]\n",
        "steps:\n  - name: a\n    templates: [missing.tmpl]\n",
        "steps:\n  - name: a\n    templates: []\n",
        "steps: [oops\n",
        "steps: []\n",
    ])
    def test_bad_catalog(self, catalog_dir: Path, schema, catalog):
        write_files(catalog_dir, {"catalog.yml": catalog})
        with pytest.raises(TemplateError):
            load_catalog(catalog_dir, schema)

    def test_missing_catalog_file(self, tmp_path: Path, schema):
        with pytest.raises(TemplateError, match="no catalog.yml"):
            load_catalog(tmp_path, schema)
