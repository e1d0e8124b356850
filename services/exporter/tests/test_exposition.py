"""
Tests for the Prometheus text exposition.
"""

from __future__ import annotations

from exporter.exposition import CONTENT_TYPE, render
from exporter.registry import Registry

from support import sample_lines, sample_value


class TestRender:

    def test_content_type(self) -> None:
        assert CONTENT_TYPE == "text/plain; charset=UTF-8"

    def test_empty_family_has_header_only(self, registry: Registry) -> None:
        registry.counter("empty", "Nothing yet", ["service"])
        text = render(registry)

        assert "# HELP t_empty_total Nothing yet" in text
        assert "# TYPE t_empty_total counter" in text
        assert not any(line.startswith("t_empty") for line in sample_lines(text))

    def test_error_counter_is_exposed(self, registry: Registry) -> None:
        assert "t_metric_errors_total 0.0" in sample_lines(render(registry))

    def test_counter_sample(self, registry: Registry) -> None:
        status = registry.counter("http_status", "Status codes", ["service", "route", "code"])
        status.inc(["api", None, 200])

        text = render(registry)
        assert sample_value(
            text, "t_http_status_total", service="api", route="", code="200"
        ) == 1.0
        assert 't_http_status_total{code="200",route="",service="api"} 1.0' in sample_lines(text)

    def test_counter_name_with_total_suffix(self, registry: Registry) -> None:
        param = registry.counter("url_param_total", "Params", ["param"])
        param.inc(["bob"])

        text = render(registry)
        assert "# TYPE t_url_param_total counter" in text
        assert 't_url_param_total{param="bob"} 1.0' in sample_lines(text)

    def test_gauge_sample(self, registry: Registry) -> None:
        registry.gauge("datastore_reachable", "Reachable").set([], 1)
        text = render(registry)
        assert "# TYPE t_datastore_reachable gauge" in text
        assert "t_datastore_reachable 1.0" in sample_lines(text)

    def test_histogram_samples(self, registry: Registry) -> None:
        latency = registry.histogram("latency", "Latency", ["service"], buckets=[1, 5])
        latency.observe(["api"], 3)

        text = render(registry)
        assert "# TYPE t_latency histogram" in text
        for le, count in (("1.0", 0.0), ("5.0", 1.0), ("+Inf", 1.0)):
            assert sample_value(text, "t_latency_bucket", service="api", le=le) == count
        assert sample_value(text, "t_latency_count", service="api") == 1.0
        assert sample_value(text, "t_latency_sum", service="api") == 3.0
        names = [line.split("{")[0] for line in sample_lines(text) if line.startswith("t_latency")]
        assert names == ["t_latency_bucket"] * 3 + ["t_latency_count", "t_latency_sum"]

    def test_label_values_are_escaped(self, registry: Registry) -> None:
        registry.gauge("escaped", "Escaping", ["v"]).set(['a"b\\c\nd'], 1)
        assert r't_escaped{v="a\"b\\c\nd"} 1.0' in sample_lines(render(registry))

    def test_families_in_registration_order(self, registry: Registry) -> None:
        registry.gauge("zeta", "Z")
        registry.gauge("alpha", "A")
        text = render(registry)
        assert text.index("# HELP t_zeta") < text.index("# HELP t_alpha")

    def test_series_sorted_by_labels(self, registry: Registry) -> None:
        gauge = registry.gauge("sorted", "Sorted", ["k"])
        for key in ("c", "a", "b"):
            gauge.set([key], 1)
        lines = [line for line in sample_lines(render(registry)) if line.startswith("t_sorted")]
        assert lines == ['t_sorted{k="a"} 1.0', 't_sorted{k="b"} 1.0', 't_sorted{k="c"} 1.0']

    def test_render_is_stable(self, registry: Registry) -> None:
        registry.counter("hits", "Hits", ["service"]).inc(["api"])
        assert render(registry) == render(registry)
