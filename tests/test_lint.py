"""Tests for zenlsp.lint — the per-document lint cycle."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from lsprotocol import types as lsp

import zenlsp.lint as lint_mod
from zenlsp.lint import Linter, error_path, uri_to_path
from zenlsp.reader import Keyword, Symbol
from zenlsp.validator import SchemaStore, ValidationError

URI = 'file:///tmp/app.edn'

APP = """\
{ns app
 person {:zen/tags #{zen/schema}
         :type zen/map
         :require #{:name}
         :keys {:name {:type zen/string}
                :age {:type zen/integer}}}
 alice {:zen/tags #{person}
        :name "Alice"
        :age "old"
        :email "a@example.com"}}
"""


def _locate(text: str, needle: str) -> tuple[int, int]:
    for i, line in enumerate(text.splitlines()):
        if needle in line:
            return i, line.index(needle)
    raise AssertionError(f'{needle!r} not in text')


class FakeValidator:
    def __init__(self, errors=(), fail=False):
        self.canned = list(errors)
        self.fail = fail
        self.submitted = []
        self.errors = []
        self.clears = 0

    def submit(self, data, metadata):
        self.submitted.append((data, metadata))
        if self.fail:
            raise RuntimeError('validator exploded')
        self.errors.extend(self.canned)

    def read_errors(self):
        return list(self.errors)

    def clear_errors(self):
        self.clears += 1
        self.errors = []


class TestLintWithSchemaStore:
    def test_type_error_points_at_value(self):
        findings = Linter(SchemaStore()).lint(APP, URI)
        age = next(f for f in findings if 'integer' in f.message)
        line, col = _locate(APP, '"old"')
        assert (age.start_line, age.start_col) == (line, col)
        assert (age.end_line, age.end_col) == (line, col + len('"old"'))

    def test_unknown_key_points_at_enclosing_map(self):
        findings = Linter(SchemaStore()).lint(APP, URI)
        unknown = next(f for f in findings if f.message == 'unknown key :email')
        assert unknown.severity == lsp.DiagnosticSeverity.Warning
        assert (unknown.start_line, unknown.start_col) == _locate(APP, '{:zen/tags #{person}')
        last = APP.splitlines()[9]
        assert (unknown.end_line, unknown.end_col) == (9, last.index('}}') + 1)

    def test_valid_document_has_no_findings(self):
        text = APP.replace(':age "old"', ':age 3').replace('\n        :email "a@example.com"', '')
        assert Linter(SchemaStore()).lint(text, URI) == []

    def test_idempotent(self):
        linter = Linter(SchemaStore())
        first = linter.lint(APP, URI)
        second = linter.lint(APP, URI)
        assert first == second
        assert len(first) == 2

    def test_parse_error_becomes_single_error_finding(self):
        validator = FakeValidator()
        text = '{ns app\n :a [1 2}'
        findings = Linter(validator).lint(text, URI)
        assert len(findings) == 1
        f = findings[0]
        assert f.severity == lsp.DiagnosticSeverity.Error
        assert (f.start_line, f.start_col) == (1, 8)
        assert validator.submitted == []

    def test_concurrent_documents_do_not_mix(self):
        linter = Linter(SchemaStore())
        doc_a = '{ns a\n s {:zen/tags #{zen/schema} :type zen/map :keys {}}\n x {:zen/tags #{s} :foo 1}}'
        doc_b = '{ns b\n s {:zen/tags #{zen/schema} :type zen/map :keys {}}\n x {:zen/tags #{s} :bar 1}}'
        jobs = [(doc_a, 'file:///a.edn'), (doc_b, 'file:///b.edn')] * 20
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda job: (job[1], linter.lint(*job)), jobs))
        for uri, findings in results:
            expected = 'unknown key :foo' if uri == 'file:///a.edn' else 'unknown key :bar'
            assert [f.message for f in findings] == [expected]

    def test_zero_denominator_is_reported_as_parse_error(self):
        published = []
        linter = Linter(SchemaStore(), publish=lambda uri, fs: published.append(fs))
        [finding] = linter.lint('{ns app\n x 1/0}', URI)
        assert finding.severity == lsp.DiagnosticSeverity.Error
        assert finding.message == 'Invalid number: 1/0'
        assert (finding.start_line, finding.start_col) == (1, 3)
        assert published == [[finding]]

    def test_malformed_require_keeps_other_findings(self):
        text = (
            '{ns app\n'
            ' s {:zen/tags #{zen/schema} :type zen/map :require 5 :keys {}}\n'
            ' x {:zen/tags #{s} :bogus 2}}'
        )
        messages = {f.message for f in Linter(SchemaStore()).lint(text, URI)}
        assert messages == {'Expected :require to be a set of keywords', 'unknown key :bogus'}

    def test_unusable_import_name_is_reported(self):
        [finding] = Linter(SchemaStore()).lint('{ns app import #{.}}', URI)
        assert finding.message == "Could not resolve import '."


class TestLintCycle:
    def test_unknown_key_in_list_form(self):
        validator = FakeValidator([
            ValidationError('unknown key :unknown-field', path=(Keyword('unknown-field'),)),
        ])
        findings = Linter(validator).lint('(schema {:a string?} :unknown-field 1)', URI)
        assert len(findings) == 1
        f = findings[0]
        assert f.severity == lsp.DiagnosticSeverity.Warning
        assert (f.start_line, f.start_col, f.end_line, f.end_col) == (0, 0, 0, 1)

    def test_metadata_and_single_clear(self):
        validator = FakeValidator()
        Linter(validator).lint('{ns app}', 'file:///tmp/my%20app.edn')
        assert validator.submitted == [({Symbol('ns'): Symbol('app')}, {'zen/file': '/tmp/my app.edn'})]
        assert validator.clears == 1

    def test_validator_failure_is_contained(self):
        validator = FakeValidator(fail=True)
        published = []
        linter = Linter(validator, publish=lambda uri, fs: published.append((uri, fs)))
        assert linter.lint('{ns app}', URI) == []
        assert validator.clears == 1
        assert published == [(URI, [])]

    def test_unresolvable_error_is_dropped(self):
        validator = FakeValidator([ValidationError('gone', path=(Symbol('nothere'),))])
        assert Linter(validator).lint('{ns app}', URI) == []

    def test_hint_only_error(self):
        validator = FakeValidator([
            ValidationError('hinted', path=(Symbol('nothere'),), row=1, col=2, severity='error'),
        ])
        [f] = Linter(validator).lint('{ns app}', URI)
        assert (f.start_line, f.start_col) == (0, 1)
        assert f.severity == lsp.DiagnosticSeverity.Error

    def test_foreign_resources_are_filtered(self):
        validator = FakeValidator([
            ValidationError('mine', path=(), resource=Symbol('app/x')),
            ValidationError('theirs', path=(), resource=Symbol('other/x')),
        ])
        findings = Linter(validator).lint('{ns app\n x {}}', URI)
        assert [f.message for f in findings] == ['mine']
        assert (findings[0].start_line, findings[0].start_col) == (1, 3)

    def test_resolver_failure_keeps_earlier_findings(self, monkeypatch):
        validator = FakeValidator([
            ValidationError('first', path=(Symbol('x'),)),
            ValidationError('second', path=(Symbol('x'),)),
        ])
        real_resolve = lint_mod.resolve
        calls = []

        def flaky(tree, path, unknown_key=False):
            calls.append(path)
            if len(calls) > 1:
                raise ValueError('boom')
            return real_resolve(tree, path, unknown_key)

        monkeypatch.setattr(lint_mod, 'resolve', flaky)
        findings = Linter(validator).lint('{ns app x {}}', URI)
        assert [f.message for f in findings] == ['first']

    def test_publish_receives_findings(self):
        validator = FakeValidator([ValidationError('m', path=(Symbol('ns'),))])
        published = []
        linter = Linter(validator, publish=lambda uri, fs: published.append((uri, list(fs))))
        findings = linter.lint('{ns app}', URI)
        assert published == [(URI, findings)]
        assert len(findings) == 1


class TestExclusion:
    def test_calva_output_window_is_skipped(self):
        validator = FakeValidator()
        published = []
        linter = Linter(validator, publish=lambda *a: published.append(a))
        uri = 'file:///proj/.calva/output-window/output.calva-repl'
        assert linter.lint('{ns app}', uri) == []
        assert validator.submitted == []
        assert published == []

    def test_configured_patterns(self):
        linter = Linter(FakeValidator(), exclude=['*/target/*'])
        assert linter.is_excluded('file:///proj/target/out.edn')
        assert not linter.is_excluded('file:///proj/src/app.edn')


class TestHelpers:
    def test_error_path_prepends_resource_name(self):
        error = ValidationError('m', path=(Keyword('a'),), resource=Symbol('app/alice'))
        assert error_path(error) == (Symbol('alice'), Keyword('a'))

    def test_error_path_without_resource(self):
        assert error_path(ValidationError('m', path=(1,))) == (1,)

    @pytest.mark.parametrize('uri, path', [
        ('file:///tmp/a.edn', '/tmp/a.edn'),
        ('file:///tmp/a%20b.edn', '/tmp/a b.edn'),
    ])
    def test_uri_to_path(self, uri, path):
        assert uri_to_path(uri) == path

    def test_preload_uses_validator_loader(self, tmp_path):
        (tmp_path / 'common.edn').write_text('{ns common}')
        store = SchemaStore()
        Linter(store).preload([str(tmp_path)])
        assert 'common' in store.namespaces

    def test_preload_without_loader_is_noop(self):
        Linter(FakeValidator()).preload(['/nowhere'])
