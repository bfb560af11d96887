"""Main tests for the Accept-Language handler.

The HTTP tests go through Starlette's TestClient, the negotiation and
table tests call the library directly.
"""

import functools
import json
import sys

import pytest
from loguru import logger

from starlette.applications import Starlette
from starlette.routing import Route
from starlette.testclient import TestClient

import accept_language_asgi.handler
from accept_language_asgi import (
    FALLBACK_TEXT,
    AcceptLanguageHandler,
    BuildError,
    BuildErrorReason,
    ResourceExhausted,
    ResponseChain,
    Settings,
    TranslationTable,
    create_app,
    negotiate,
)
from accept_language_asgi.headers import MAX_SEGMENTS, parse_part, split_segments
from accept_language_asgi.logging_config import configure_logging
from accept_language_asgi.table import MAX_SOURCE_BYTES

SOURCE = b"en hello world\nes hola mundo\nfr bonjour monde\n"


@pytest.fixture
def test_client_factory(anyio_backend_name, anyio_backend_options):
    return functools.partial(
        TestClient,
        backend=anyio_backend_name,
        backend_options=anyio_backend_options,
    )


@pytest.fixture
def table():
    return TranslationTable.build(SOURCE)


def test_negotiated_response(test_client_factory, table):
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "es,en;q=0.5"})
    assert response.status_code == 200
    assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
    assert response.text == "hola mundo\nhello world\n"
    assert int(response.headers["Content-Length"]) == len(
        "hola mundo\nhello world\n"
    )


def test_missing_header_sends_fallback(test_client_factory, table):
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == FALLBACK_TEXT
    assert int(response.headers["Content-Length"]) == len(FALLBACK_TEXT)


def test_unknown_languages_send_fallback(test_client_factory, table):
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "xx,yy"})
    assert response.status_code == 200
    assert response.text == FALLBACK_TEXT


def test_content_length_counts_utf8_bytes(test_client_factory):
    table = TranslationTable.build("ja こんにちは世界\n".encode())
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "ja"})
    assert response.text == "こんにちは世界\n"
    assert int(response.headers["Content-Length"]) == len(
        "こんにちは世界\n".encode()
    )


def test_head_request_sends_headers_only(test_client_factory, table):
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.head("/", headers={"accept-language": "fr"})
    assert response.status_code == 200
    assert response.content == b""
    assert int(response.headers["Content-Length"]) == len("bonjour monde\n")


def test_post_not_allowed(test_client_factory, table):
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.post("/", headers={"accept-language": "fr"})
    assert response.status_code == 405


def test_handler_mounted_directly(test_client_factory, table):
    app = Starlette(routes=[Route("/hello", AcceptLanguageHandler(table))])

    client = test_client_factory(app)
    response = client.get("/hello", headers={"accept-language": "FR"})
    assert response.status_code == 200
    assert response.text == "bonjour monde\n"


def test_custom_fallback_text(test_client_factory, table):
    app = create_app(Settings(fallback_text="nothing for you"), table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "de"})
    assert response.text == "nothing for you"


def test_resource_exhausted_is_internal_error(test_client_factory, table, monkeypatch):
    def exhausted(*args, **kwargs):
        raise ResourceExhausted("no memory")

    monkeypatch.setattr(accept_language_asgi.handler, "negotiate", exhausted)
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "en"})
    assert response.status_code == 500
    assert response.text == "Internal Server Error"


def test_memory_error_while_encoding_is_internal_error(
    test_client_factory, table, monkeypatch
):
    def exhausted(self):
        raise MemoryError

    monkeypatch.setattr(ResponseChain, "chunks", exhausted)
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "en"})
    assert response.status_code == 500
    assert response.text == "Internal Server Error"


def test_builtin_translations(test_client_factory):
    app = create_app(Settings())

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "in;q=0.9,en;q=0.1"})
    assert response.text == "namaste duniya\nhello world\n"


def test_translations_file_from_environment(test_client_factory, tmp_path, monkeypatch):
    source = tmp_path / "translations.txt"
    source.write_bytes(b"de hallo welt\nit ciao mondo\n")
    monkeypatch.setenv("ACCEPT_LANGUAGE_TRANSLATIONS_FILE", str(source))
    monkeypatch.setenv("ACCEPT_LANGUAGE_PATH", "/greeting")

    app = create_app()

    client = test_client_factory(app)
    response = client.get("/greeting", headers={"accept-language": "it,de"})
    assert response.status_code == 200
    assert response.text == "ciao mondo\nhallo welt\n"
    assert client.get("/").status_code == 404


def test_unreadable_translations_file_fails_at_startup(tmp_path):
    settings = Settings(translations_file=tmp_path / "missing.txt")

    with pytest.raises(BuildError) as excinfo:
        create_app(settings)
    assert excinfo.value.reason is BuildErrorReason.SOURCE_UNREADABLE


def test_locations_have_their_own_tables(test_client_factory, table):
    german = TranslationTable.build(b"de hallo welt\n")
    app = create_app(table=table, locations={"/de": german, "/inherit": None})

    client = test_client_factory(app)
    headers = {"accept-language": "de,en"}
    assert client.get("/", headers=headers).text == "hello world\n"
    assert client.get("/de", headers=headers).text == "hallo welt\n"
    assert client.get("/inherit", headers=headers).text == "hello world\n"


@pytest.mark.parametrize(
    "accept_language, expected",
    [
        # 1. Default quality (10) beats an explicit weight
        ("es,en;q=0.5", ["hola mundo", "hello world"]),

        # 2. Equal weights keep header order
        ("en;q=0.5,es;q=0.5", ["hello world", "hola mundo"]),
        ("es;q=0.5,en;q=0.5", ["hola mundo", "hello world"]),

        # 3. Higher weight first regardless of position
        ("en;q=0.2, fr;q=0.9, es;q=0.5", ["bonjour monde", "hola mundo", "hello world"]),

        # 4. Unknown codes are dropped
        ("xx, en;q=0.3, yy", ["hello world"]),

        # 5. Codes are case-insensitive
        ("EN, Es;q=0.1", ["hello world", "hola mundo"]),

        # 6. q=1 and q=1.0 do not match the single-digit pattern: default 10
        ("en;q=0.9,es;q=1", ["hola mundo", "hello world"]),
        ("en;q=0.9,es;q=1.0", ["hola mundo", "hello world"]),

        # 7. Malformed qualifiers default to 10
        ("en;q=0.1,es;q=abc", ["hola mundo", "hello world"]),

        # 8. Only the first digit is read
        ("en;q=0.55,es;q=0.6", ["hola mundo", "hello world"]),

        # 9. q=0.0 is the lowest weight, not an exclusion
        ("en;q=0.0,es", ["hola mundo", "hello world"]),

        # 10. Runs of commas and spaces separate segments
        (",, en ,,  es;q=0.1 ,", ["hello world", "hola mundo"]),

        # 11. Repeated codes produce repeated chunks
        ("en,en;q=0.1", ["hello world", "hello world"]),

        # 12. Sub-tags are not stripped
        ("en-US,fr;q=0.1", ["bonjour monde"]),
    ],
)
def test_negotiation_order(table, accept_language, expected):
    chain = negotiate(accept_language, table)

    assert not chain.is_fallback
    assert list(chain.texts) == expected
    assert chain.body() == "".join(f"{text}\n" for text in expected).encode()


@pytest.mark.parametrize("accept_language", [None, "", " , ", "xx,yy", "*", "en-US"])
def test_negotiation_fallback(table, accept_language):
    chain = negotiate(accept_language, table)

    assert chain.is_fallback
    assert list(chain.texts) == [FALLBACK_TEXT]
    assert chain.body() == FALLBACK_TEXT.encode()


def test_fallback_chain_differs_from_matched_chain():
    assert ResponseChain.fallback("x") != ResponseChain(("x",))
    assert ResponseChain.fallback("x").body() == b"x"
    assert ResponseChain(("x",)).body() == b"x\n"


def test_space_inside_segment_splits_it(table):
    # "en; q=0.1" is two segments: "en;" (no weight) and "q=0.1" (unknown code)
    chain = negotiate("es;q=0.5, en; q=0.1", table)
    assert list(chain.texts) == ["hello world", "hola mundo"]


def test_segments_beyond_limit_are_ignored(table):
    unknown = ["xx"] * MAX_SEGMENTS

    assert negotiate(",".join(unknown + ["en"]), table).is_fallback
    chain = negotiate(",".join(unknown[1:] + ["en"]), table)
    assert chain.texts == ("hello world",)


def test_segment_limit_matches_truncated_header(table):
    parts = [f"{code};q=0.{i % 10}" for i, code in enumerate(["en", "es", "fr", "xx"] * 20)]
    header = ", ".join(parts)
    truncated = ", ".join(parts[:MAX_SEGMENTS])

    assert len(split_segments(header)) == MAX_SEGMENTS
    assert list(negotiate(header, table).texts) == list(negotiate(truncated, table).texts)


def test_negotiation_is_idempotent(table):
    header = "fr;q=0.3, es, en;q=0.3"

    first = negotiate(header, table)
    second = negotiate(header, table)
    assert first.texts == second.texts == ("hola mundo", "bonjour monde", "hello world")
    assert first.body() == second.body()


def test_memory_error_becomes_resource_exhausted():
    class ExhaustedTable(TranslationTable):
        def lookup(self, code):
            raise MemoryError

    with pytest.raises(ResourceExhausted):
        negotiate("en", ExhaustedTable({"en": "hello world"}))


@pytest.mark.parametrize(
    "part, code, quality",
    [
        ("en", "en", 10),
        ("EN;q=0.4", "en", 4),
        ("fr;q=0.0", "fr", 0),
        ("fr;q=0.", "fr", 10),
        ("fr;", "fr", 10),
        ("de;Q=0.5", "de", 10),
        ("de;q=0.5;level=1", "de", 5),
    ],
)
def test_parse_part(part, code, quality):
    token = parse_part(part)
    assert token.code == code
    assert token.quality == quality


def test_lookup_is_case_insensitive(table):
    for code in ("en", "EN", "eN"):
        assert table.lookup(code) == ("hello world", True)
    assert table.lookup("de") == ("", False)
    assert "ES" in table
    assert table["Fr"] == "bonjour monde"
    assert sorted(table) == ["en", "es", "fr"]


def test_build_lowercases_codes():
    table = TranslationTable.build(b"EN hello world\nEs hola mundo\n")
    assert dict(table) == {"en": "hello world", "es": "hola mundo"}


def test_build_duplicate_code_last_write_wins():
    table = TranslationTable.build(b"en hello\nEN hello world\n")
    assert len(table) == 1
    assert table.lookup("en") == ("hello world", True)


def test_build_skips_malformed_lines():
    table = TranslationTable.build(
        b"\n  en   hello   world  \r\nlonely\n\nes hola mundo\nfr"
    )
    assert dict(table) == {"en": "hello   world  ", "es": "hola mundo"}


def test_build_truncates_large_sources():
    lines = b"".join(b"l%03d text number %d\n" % (i, i) for i in range(200))
    assert len(lines) > MAX_SOURCE_BYTES

    table = TranslationTable.build(lines)
    assert dict(table) == dict(TranslationTable.build(lines[:MAX_SOURCE_BYTES]))
    assert "l000" in table
    assert "l199" not in table


def test_build_keeps_bytes_of_character_split_by_truncation():
    source = b"en " + b"a" * (MAX_SOURCE_BYTES - 4) + "é".encode()
    assert len(source) == MAX_SOURCE_BYTES + 1

    table = TranslationTable.build(source)
    assert dict(table) == dict(TranslationTable.build(source[:MAX_SOURCE_BYTES]))
    assert negotiate("en", table).body() == source[3:MAX_SOURCE_BYTES] + b"\n"


def test_build_keeps_non_utf8_bytes():
    source = "en hello\nes hola señor\n".encode("latin-1")

    table = TranslationTable.build(source)
    assert sorted(table) == ["en", "es"]
    assert negotiate("es", table).body() == "hola señor\n".encode("latin-1")


def test_build_keeps_trailing_odd_byte():
    table = TranslationTable.build(b"en hello\xc3")

    assert negotiate("en", table).body() == b"hello\xc3\n"


def test_non_utf8_translation_sent_unchanged(test_client_factory):
    table = TranslationTable.build("fr bonjour à tous\n".encode("latin-1"))
    app = create_app(table=table)

    client = test_client_factory(app)
    response = client.get("/", headers={"accept-language": "fr"})
    assert response.status_code == 200
    assert response.content == "bonjour à tous\n".encode("latin-1")
    assert int(response.headers["Content-Length"]) == len(response.content)


def test_build_full_table_fails():
    with pytest.raises(BuildError) as excinfo:
        TranslationTable.build(b"a x\nb y\nA z\nc w\n", max_entries=2)
    assert excinfo.value.reason is BuildErrorReason.INSERTION_FAILED
    assert "'c'" in str(excinfo.value)


def test_from_path(tmp_path):
    source = tmp_path / "translations.txt"
    source.write_bytes(SOURCE + b"x" * MAX_SOURCE_BYTES)

    assert dict(TranslationTable.from_path(source)) == dict(TranslationTable.build(SOURCE))


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(messages.append, format="{message}", level="INFO")
    yield messages
    logger.remove(handler_id)


def test_from_path_logs_truncation(tmp_path, log_messages):
    source = tmp_path / "translations.txt"
    source.write_bytes(SOURCE + b"x" * MAX_SOURCE_BYTES)

    TranslationTable.from_path(source)
    assert log_messages[-1].strip() == (
        "Built translation table with 3 entries (source truncated)"
    )


def test_from_path_small_file_not_truncated(tmp_path, log_messages):
    source = tmp_path / "translations.txt"
    source.write_bytes(SOURCE)

    TranslationTable.from_path(source)
    assert log_messages[-1].strip() == "Built translation table with 3 entries"


def test_from_path_unreadable(tmp_path):
    with pytest.raises(BuildError) as excinfo:
        TranslationTable.from_path(tmp_path)
    assert excinfo.value.reason is BuildErrorReason.SOURCE_UNREADABLE


def test_table_is_read_only(table):
    with pytest.raises(TypeError):
        table._entries["de"] = "hallo welt"


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.__stderr__)


def test_configure_logging_json(capsys, restore_logger):
    configure_logging("production", "DEBUG")
    TranslationTable.build(SOURCE)

    lines = [json.loads(line) for line in capsys.readouterr().err.splitlines()]
    assert lines[-1]["record"]["message"] == "Built translation table with 3 entries"
    assert lines[-1]["record"]["level"]["name"] == "INFO"


def test_configure_logging_level_filters(capsys, restore_logger):
    configure_logging("development", "WARNING")
    TranslationTable.build(b"en hello\nen hello world\n")

    err = capsys.readouterr().err
    assert "Duplicate language code 'en'" in err
    assert "Built translation table" not in err
