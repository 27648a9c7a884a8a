from apinav.extractors.frontend.fallback import extract_call_sites_fallback


def test_fallback_matches_fetch_and_member_verbs():
    src = 'const a = fetch("/api/a");\nthis.http.post(`/api/users/${id}`, body);\n'
    found = extract_call_sites_fallback(src, "x.ts")

    assert [(d.method, d.endpoint, list(d.params)) for d in found] == [
        ("GET", "/api/a", []),
        ("POST", "/api/users/{id}", ["id"]),
    ]
    assert found[0].location.line == 1
    assert found[0].location.column == 16
    assert found[1].location.line == 2
    assert found[1].raw_endpoint == "/api/users/${id}"


def test_fallback_query_interpolation_is_dropped():
    [d] = extract_call_sites_fallback("fetch(`/api/Users${query}`)")
    assert d.endpoint == "/api/Users"
    assert d.params == ()


def test_fallback_skips_non_api_paths():
    assert extract_call_sites_fallback('fetch("/health"); axios.get("https://example.com/api/x")') == []


def test_fallback_multiple_hits_on_one_line_in_column_order():
    src = 'api.delete("/api/b"); fetch("api/a")'
    found = extract_call_sites_fallback(src)
    assert [(d.method, d.endpoint) for d in found] == [("DELETE", "/api/b"), ("GET", "/api/a")]
