"""Tests for the client registry and redirect policies."""
from bridge_server.clients import (
    AcceptAnyRedirect,
    ClientRegistry,
    FixedRedirects,
    RegisteredClient,
    hash_secret,
    verify_secret,
)


def test_unknown_client_is_synthesized_with_accept_any_redirects():
    registry = ClientRegistry()
    client = registry.get("vscode-1")
    assert client.client_id == "vscode-1"
    assert isinstance(client.redirect_policy, AcceptAnyRedirect)
    assert client.redirect_uri_allowed("http://127.0.0.1:33418/callback")
    assert client.redirect_uri_allowed("https://anything.example/cb?x=1")
    assert client.grant_types == ("authorization_code",)
    assert client.token_endpoint_auth_method == "none"
    assert client.is_confidential is False


def test_synthesized_client_is_remembered():
    registry = ClientRegistry()
    first = registry.get("c1")
    assert "c1" in registry
    assert registry.get("c1") is first


def test_register_overwrites_synthesized_client():
    registry = ClientRegistry()
    registry.get("c1")
    registered = RegisteredClient(
        client_id="c1",
        redirect_policy=FixedRedirects(frozenset({"http://127.0.0.1:8000/callback"})),
    )
    assert registry.register(registered) is registered
    client = registry.get("c1")
    assert client is registered
    assert client.redirect_uri_allowed("http://127.0.0.1:8000/callback")
    assert not client.redirect_uri_allowed("http://evil.example/callback")


def test_fixed_redirects_default_uri_only_when_unambiguous():
    one = FixedRedirects(frozenset({"http://a/cb"}))
    two = FixedRedirects(frozenset({"http://a/cb", "http://b/cb"}))
    assert one.default_uri() == "http://a/cb"
    assert two.default_uri() is None
    assert AcceptAnyRedirect().default_uri() is None
    assert two.as_list() == ["http://a/cb", "http://b/cb"]


def test_confidential_client_secret_hash():
    hashed = hash_secret("s3cret")
    client = RegisteredClient(
        client_id="conf",
        redirect_policy=FixedRedirects(frozenset({"http://a/cb"})),
        token_endpoint_auth_method="client_secret_post",
        client_secret_hash=hashed,
    )
    assert client.is_confidential
    assert verify_secret("s3cret", hashed)
    assert not verify_secret("wrong", hashed)
