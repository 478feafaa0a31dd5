from swcache import Headers


def test_lookup_is_case_insensitive() -> None:
    headers = Headers({"Content-Type": "text/html"})

    assert headers["content-type"] == "text/html"
    assert headers["CONTENT-TYPE"] == "text/html"
    assert "Content-type" in headers


def test_multiple_values() -> None:
    headers = Headers.from_items([("Set-Cookie", "a=1"), ("set-cookie", "b=2"), ("Vary", "Accept")])

    assert headers["set-cookie"] == "a=1, b=2"
    assert headers.get_list("Set-Cookie") == ["a=1", "b=2"]
    assert headers.multi_items() == [("set-cookie", "a=1"), ("set-cookie", "b=2"), ("vary", "Accept")]


def test_assignment_replaces_every_value() -> None:
    headers = Headers({"Accept": ["text/html", "application/json"]})

    headers["accept"] = "*/*"

    assert headers.get_list("accept") == ["*/*"]
    assert len(headers) == 1


def test_copy_is_independent() -> None:
    headers = Headers({"X-Version": "v1"})
    copy = headers.copy()

    copy.add("x-version", "v2")
    del headers["x-version"]

    assert copy.get_list("X-Version") == ["v1", "v2"]
    assert "x-version" not in headers
    assert headers != copy
