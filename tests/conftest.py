"""Shared fixtures: keys, a throwaway CA and an in-memory ACME server.

The fake server speaks enough RFC 8555 to drive the client end to end. It
checks nonces, request URLs and JWS signatures, validates challenges against
what the test published, and issues real certificates from a test CA.
"""
import itertools
import json
import secrets
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any
from typing import Optional
from unittest import mock
from urllib.parse import urlsplit

import pytest
import requests
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from cryptography.x509.oid import NameOID
from requests.structures import CaseInsensitiveDict

from acme_autocert.acme_client.auto import CallbackChallengeHandler
from acme_autocert.acme_client.client import ACMEClient
from acme_autocert.csr import create_ec_private_key
from acme_autocert.csr import create_private_key
from acme_autocert.jws import b64url_decode
from acme_autocert.jws import b64url_encode

ACME_ERROR = "urn:ietf:params:acme:error:"
ROOT_NAME = "Fake Root X1"
ALT_ROOT_NAME = "Fake Alt Root X2"


def make_response(
    status_code: int,
    body: Any = None,
    headers: Optional[dict[str, str]] = None,
    url: str = "",
) -> requests.Response:
    """Build a requests.Response as if it came off the wire."""
    headers = dict(headers or {})
    if body is None:
        content = b""
    elif isinstance(body, bytes):
        content = body
    elif isinstance(body, str):
        content = body.encode("UTF-8")
    else:
        content = json.dumps(body).encode("UTF-8")
        headers.setdefault("Content-Type", "application/json")

    response = requests.Response()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers)
    response._content = content
    response.encoding = "UTF-8"
    response.url = url
    return response


def problem_response(status_code: int, kind: str, detail: str, headers=None) -> requests.Response:
    return make_response(
        status_code,
        {"type": ACME_ERROR + kind, "detail": detail, "status": status_code},
        (headers or {}) | {"Content-Type": "application/problem+json"},
    )


def jwk_thumbprint(jwk: dict[str, str]) -> str:
    required = ("e", "kty", "n") if jwk["kty"] == "RSA" else ("crv", "kty", "x", "y")
    digest = hashes.Hash(hashes.SHA256())
    digest.update(
        json.dumps({k: jwk[k] for k in required}, separators=(",", ":"), sort_keys=True).encode()
    )
    return b64url_encode(digest.finalize())


def _b64_int(value: str) -> int:
    return int.from_bytes(b64url_decode(value), "big")


def verify_jws_signature(jwk: dict[str, str], alg: str, jws: dict[str, str]) -> None:
    """Raise InvalidSignature unless `jws` is signed by the key in `jwk`."""
    signing_input = f"{jws['protected']}.{jws['payload']}".encode("ASCII")
    signature = b64url_decode(jws["signature"])

    if jwk["kty"] == "RSA":
        if alg != "RS256":
            raise InvalidSignature(f"alg {alg} does not match RSA key")
        public_key = rsa.RSAPublicNumbers(_b64_int(jwk["e"]), _b64_int(jwk["n"])).public_key()
        public_key.verify(signature, signing_input, padding.PKCS1v15(), hashes.SHA256())
        return

    curve, hash_cls, expected_alg = {
        "P-256": (ec.SECP256R1(), hashes.SHA256, "ES256"),
        "P-384": (ec.SECP384R1(), hashes.SHA384, "ES384"),
        "P-521": (ec.SECP521R1(), hashes.SHA512, "ES512"),
    }[jwk["crv"]]
    if alg != expected_alg:
        raise InvalidSignature(f"alg {alg} does not match {jwk['crv']} key")

    size = len(signature) // 2
    r = int.from_bytes(signature[:size], "big")
    s = int.from_bytes(signature[size:], "big")
    public_key = ec.EllipticCurvePublicNumbers(_b64_int(jwk["x"]), _b64_int(jwk["y"]), curve).public_key()
    public_key.verify(encode_dss_signature(r, s), signing_input, ec.ECDSA(hash_cls()))


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ASCII")


class FakeCA:
    """A root, an alternative root, and a cross-signed copy of the first root
    so that certificates come with a default and an alternate chain."""

    def __init__(self):
        self.root_key = ec.generate_private_key(ec.SECP256R1())
        self.alt_root_key = ec.generate_private_key(ec.SECP256R1())
        self.root = self._ca_certificate(ROOT_NAME, self.root_key, ROOT_NAME, self.root_key)
        self.alt_root = self._ca_certificate(
            ALT_ROOT_NAME, self.alt_root_key, ALT_ROOT_NAME, self.alt_root_key
        )
        self.cross_signed_root = self._ca_certificate(
            ROOT_NAME, self.root_key, ALT_ROOT_NAME, self.alt_root_key
        )

    @staticmethod
    def _ca_certificate(subject: str, key, issuer: str, issuer_key) -> x509.Certificate:
        now = datetime.now(timezone.utc)
        return (
            x509.CertificateBuilder()
            .subject_name(_name(subject))
            .issuer_name(_name(issuer))
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(issuer_key, hashes.SHA256())
        )

    def issue(self, csr: x509.CertificateSigningRequest) -> x509.Certificate:
        now = datetime.now(timezone.utc)
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        return (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(_name(ROOT_NAME))
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=90))
            .add_extension(san, critical=False)
            .sign(self.root_key, hashes.SHA256())
        )

    def chains(self, leaf: x509.Certificate) -> tuple[str, str]:
        return _pem(leaf) + _pem(self.root), _pem(leaf) + _pem(self.cross_signed_root)


class Problem(Exception):
    def __init__(self, status_code: int, kind: str, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.kind = kind
        self.detail = detail


@dataclass
class SignedRequest:
    protected: dict[str, Any]
    payload: Any
    jwk: dict[str, str]
    account_url: Optional[str]


class FakeACMEServer:
    """An in-memory ACME server. Use `session()` as the client's HTTP session.

    Knobs for tests:
    - `bad_nonce_responses`: reject that many signed requests with badNonce
    - `bad_nonce_with_replay`: whether those rejections carry a fresh nonce
    - `eab`: (kid, mac key) to require external account binding
    - `fail_challenges`: answer every challenge validation with `invalid`
    - `http_responses` / `dns_records`: what the server sees when validating
    """

    base_url = "https://acme.test"

    def __init__(self, ca: FakeCA):
        self.ca = ca
        self.requests: list[tuple[str, str]] = []
        self.nonces: set[str] = set()
        self.bad_nonce_responses = 0
        self.bad_nonce_with_replay = True
        self.eab: Optional[tuple[str, bytes]] = None
        self.fail_challenges = False
        self.terms_of_service: Optional[str] = self.url("/terms")

        self.accounts: dict[str, dict[str, Any]] = {}
        self.orders: dict[str, dict[str, Any]] = {}
        self.authorizations: dict[str, dict[str, Any]] = {}
        self.challenges: dict[str, dict[str, Any]] = {}
        self.certificates: dict[str, dict[str, Any]] = {}
        self.http_responses: dict[str, str] = {}
        self.dns_records: dict[str, list[str]] = {}
        self._ids = itertools.count(1)

    def url(self, path: str) -> str:
        return self.base_url + path

    @property
    def directory_url(self) -> str:
        return self.url("/directory")

    def session(self) -> mock.Mock:
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = self.request
        return session

    def signed_posts(self, path: Optional[str] = None) -> int:
        return sum(
            1
            for method, url in self.requests
            if method == "POST" and (path is None or urlsplit(url).path == path)
        )

    def _new_id(self) -> int:
        return next(self._ids)

    def _respond(self, status_code: int, body: Any = None, headers=None, nonce=True):
        headers = dict(headers or {})
        if nonce:
            fresh = secrets.token_urlsafe(16)
            self.nonces.add(fresh)
            headers["Replay-Nonce"] = fresh
        return make_response(status_code, body, headers)

    def _problem(self, problem: Problem, nonce=True):
        response = problem_response(problem.status_code, problem.kind, problem.detail)
        if nonce:
            fresh = secrets.token_urlsafe(16)
            self.nonces.add(fresh)
            response.headers["Replay-Nonce"] = fresh
        return response

    def request(self, method, url, headers=None, data=None, verify=True, **kwargs):
        self.requests.append((method, url))
        path = urlsplit(url).path

        if method == "GET" and path == "/directory":
            return make_response(200, self.directory())
        if method == "HEAD" and path == "/new-nonce":
            return self._respond(200)
        if method != "POST":
            return self._problem(Problem(405, "malformed", f"{method} not allowed"))

        try:
            signed = self._verify_request(url, data)
        except Problem as e:
            return self._problem(e, nonce=e.kind != "badNonce" or self.bad_nonce_with_replay)

        parts = path.strip("/").split("/")
        routes = {
            "new-account": self._new_account,
            "key-change": self._key_change,
            "new-order": self._new_order,
            "revoke-cert": self._revoke_cert,
            "acct": self._account,
            "order": self._order,
            "authz": self._authorization,
            "chall": self._challenge,
            "finalize": self._finalize,
            "cert": self._certificate,
        }
        if parts[0] not in routes:
            return self._problem(Problem(404, "malformed", f"No such resource {path}"))
        try:
            return routes[parts[0]](signed, url)
        except Problem as e:
            return self._problem(e)

    def directory(self) -> dict[str, Any]:
        meta: dict[str, Any] = {"externalAccountRequired": self.eab is not None}
        if self.terms_of_service:
            meta["termsOfService"] = self.terms_of_service
        return {
            "newNonce": self.url("/new-nonce"),
            "newAccount": self.url("/new-account"),
            "newOrder": self.url("/new-order"),
            "revokeCert": self.url("/revoke-cert"),
            "keyChange": self.url("/key-change"),
            "meta": meta,
        }

    def _verify_request(self, url: str, data: Optional[str]) -> SignedRequest:
        body = json.loads(data)
        protected = json.loads(b64url_decode(body["protected"]))

        if self.bad_nonce_responses > 0:
            self.bad_nonce_responses -= 1
            raise Problem(400, "badNonce", "JWS has an invalid anti-replay nonce")
        if protected.get("nonce") not in self.nonces:
            raise Problem(400, "badNonce", "JWS has an invalid anti-replay nonce")
        self.nonces.discard(protected["nonce"])

        if protected.get("url") != url:
            raise Problem(401, "unauthorized", "JWS url header does not match request URL")
        if ("jwk" in protected) == ("kid" in protected):
            raise Problem(400, "malformed", "JWS must carry exactly one of jwk and kid")

        account_url = protected.get("kid")
        if account_url is None:
            jwk = protected["jwk"]
        else:
            if account_url not in self.accounts:
                raise Problem(400, "accountDoesNotExist", "Unknown account")
            account = self.accounts[account_url]
            if account["status"] != "valid":
                raise Problem(401, "unauthorized", f"Account is {account['status']}")
            jwk = account["jwk"]

        try:
            verify_jws_signature(jwk, protected["alg"], body)
        except InvalidSignature:
            raise Problem(400, "malformed", "JWS signature invalid") from None

        payload = None if body["payload"] == "" else json.loads(b64url_decode(body["payload"]))
        return SignedRequest(protected, payload, jwk, account_url)

    def _require_account(self, signed: SignedRequest) -> dict[str, Any]:
        if signed.account_url is None:
            raise Problem(400, "malformed", "Request must be signed with kid")
        return self.accounts[signed.account_url]

    def _account_json(self, url: str) -> dict[str, Any]:
        account = self.accounts[url]
        return {
            "status": account["status"],
            "contact": account["contact"],
            "termsOfServiceAgreed": account["termsOfServiceAgreed"],
            "orders": url + "/orders",
        }

    def _find_account(self, jwk: dict[str, str]) -> Optional[str]:
        for url, account in self.accounts.items():
            if jwk_thumbprint(account["jwk"]) == jwk_thumbprint(jwk):
                return url
        return None

    def _check_eab(self, binding: Optional[dict[str, str]], jwk: dict[str, str], url: str):
        if binding is None:
            raise Problem(400, "externalAccountRequired", "External account binding required")
        protected = json.loads(b64url_decode(binding["protected"]))
        kid, key = self.eab
        if protected != {"alg": "HS256", "kid": kid, "url": url}:
            raise Problem(400, "malformed", "Bad external account binding header")
        if json.loads(b64url_decode(binding["payload"])) != jwk:
            raise Problem(400, "malformed", "External account binding does not carry the account key")
        mac = hmac.HMAC(key, hashes.SHA256())
        mac.update(f"{binding['protected']}.{binding['payload']}".encode("ASCII"))
        try:
            mac.verify(b64url_decode(binding["signature"]))
        except InvalidSignature:
            raise Problem(400, "unauthorized", "External account binding MAC invalid") from None

    def _new_account(self, signed: SignedRequest, url: str):
        if signed.account_url is not None:
            raise Problem(400, "malformed", "newAccount must be signed with jwk")

        existing = self._find_account(signed.jwk)
        if existing is not None:
            return self._respond(200, self._account_json(existing), {"Location": existing})

        payload = signed.payload or {}
        if payload.get("onlyReturnExisting"):
            raise Problem(400, "accountDoesNotExist", "No account for this key")
        if self.eab is not None:
            self._check_eab(payload.get("externalAccountBinding"), signed.jwk, url)

        account_url = self.url(f"/acct/{self._new_id()}")
        self.accounts[account_url] = {
            "jwk": signed.jwk,
            "status": "valid",
            "contact": payload.get("contact", []),
            "termsOfServiceAgreed": payload.get("termsOfServiceAgreed", False),
        }
        return self._respond(201, self._account_json(account_url), {"Location": account_url})

    def _account(self, signed: SignedRequest, url: str):
        if signed.account_url != url:
            raise Problem(401, "unauthorized", "kid does not match account URL")
        account = self.accounts[url]
        for field in ("contact", "status", "termsOfServiceAgreed"):
            if signed.payload and field in signed.payload:
                account[field] = signed.payload[field]
        return self._respond(200, self._account_json(url))

    def _key_change(self, signed: SignedRequest, url: str):
        account = self._require_account(signed)
        inner = signed.payload
        protected = json.loads(b64url_decode(inner["protected"]))

        if protected.get("url") != url or "nonce" in protected or "jwk" not in protected:
            raise Problem(400, "malformed", "Malformed inner JWS")
        try:
            verify_jws_signature(protected["jwk"], protected["alg"], inner)
        except InvalidSignature:
            raise Problem(400, "malformed", "Inner JWS signature invalid") from None

        inner_payload = json.loads(b64url_decode(inner["payload"]))
        if inner_payload.get("account") != signed.account_url:
            raise Problem(400, "malformed", "Inner JWS names another account")
        if inner_payload.get("oldKey") != account["jwk"]:
            raise Problem(400, "malformed", "oldKey does not match the account key")
        if self._find_account(protected["jwk"]) is not None:
            raise Problem(409, "malformed", "New key is already in use")

        account["jwk"] = protected["jwk"]
        return self._respond(200, self._account_json(signed.account_url))

    def _new_order(self, signed: SignedRequest, url: str):
        self._require_account(signed)
        identifiers = signed.payload["identifiers"]

        authorization_urls = []
        for identifier in identifiers:
            value = identifier["value"]
            wildcard = value.startswith("*.")
            authz_url = self.url(f"/authz/{self._new_id()}")
            types = ["dns-01"] if wildcard else ["http-01", "dns-01"]
            challenge_urls = []
            for challenge_type in types:
                challenge_url = self.url(f"/chall/{self._new_id()}")
                self.challenges[challenge_url] = {
                    "type": challenge_type,
                    "url": challenge_url,
                    "status": "pending",
                    "token": secrets.token_urlsafe(32),
                    "_authz": authz_url,
                }
                challenge_urls.append(challenge_url)
            self.authorizations[authz_url] = {
                "identifier": {"type": "dns", "value": value[2:] if wildcard else value},
                "status": "pending",
                "expires": "2099-01-01T00:00:00Z",
                "_challenges": challenge_urls,
                "_account": signed.account_url,
            }
            if wildcard:
                self.authorizations[authz_url]["wildcard"] = True
            authorization_urls.append(authz_url)

        order_id = self._new_id()
        order_url = self.url(f"/order/{order_id}")
        self.orders[order_url] = {
            "status": "pending",
            "expires": "2099-01-01T00:00:00Z",
            "identifiers": identifiers,
            "authorizations": authorization_urls,
            "finalize": self.url(f"/finalize/{order_id}"),
            "_account": signed.account_url,
        }
        return self._respond(201, self._order_json(order_url), {"Location": order_url})

    def _order_status(self, order: dict[str, Any]) -> str:
        if order["status"] != "pending":
            return order["status"]
        statuses = [self.authorizations[url]["status"] for url in order["authorizations"]]
        if any(status == "invalid" for status in statuses):
            return "invalid"
        if all(status == "valid" for status in statuses):
            return "ready"
        return "pending"

    def _order_json(self, order_url: str) -> dict[str, Any]:
        order = self.orders[order_url]
        result = {k: v for k, v in order.items() if not k.startswith("_")}
        result["status"] = self._order_status(order)
        if result["status"] == "invalid":
            result["error"] = {"type": ACME_ERROR + "unauthorized", "detail": "Authorization failed"}
        return result

    def _order(self, signed: SignedRequest, url: str):
        self._require_account(signed)
        order = self.orders[url]
        response = self._respond(200, self._order_json(url))
        # Certificates are issued by the time anyone looks again
        if order["status"] == "processing":
            order["status"] = "valid"
            order["certificate"] = order["_certificate"]
            response.headers["Retry-After"] = "1"
        return response

    def _authorization_json(self, authz_url: str) -> dict[str, Any]:
        authz = self.authorizations[authz_url]
        result = {k: v for k, v in authz.items() if not k.startswith("_")}
        result["challenges"] = [self._challenge_json(url) for url in authz["_challenges"]]
        return result

    def _authorization(self, signed: SignedRequest, url: str):
        self._require_account(signed)
        if signed.payload is not None:
            if signed.payload.get("status") != "deactivated":
                raise Problem(400, "malformed", "Authorizations can only be deactivated")
            self.authorizations[url]["status"] = "deactivated"
        return self._respond(200, self._authorization_json(url))

    def _challenge_json(self, challenge_url: str) -> dict[str, Any]:
        return {k: v for k, v in self.challenges[challenge_url].items() if not k.startswith("_")}

    def _challenge(self, signed: SignedRequest, url: str):
        account = self._require_account(signed)
        challenge = self.challenges[url]

        if signed.payload is None or challenge["status"] != "pending":
            return self._respond(200, self._challenge_json(url))

        authz = self.authorizations[challenge["_authz"]]
        domain = authz["identifier"]["value"]
        key_authorization = f"{challenge['token']}.{jwk_thumbprint(account['jwk'])}"
        if challenge["type"] == "http-01":
            published = self.http_responses.get(challenge["token"]) == key_authorization
        else:
            digest = hashes.Hash(hashes.SHA256())
            digest.update(key_authorization.encode("ASCII"))
            published = b64url_encode(digest.finalize()) in self.dns_records.get(domain, [])

        if published and not self.fail_challenges:
            challenge["status"] = "valid"
            challenge["validated"] = datetime.now(timezone.utc).isoformat()
            authz["status"] = "valid"
        else:
            challenge["status"] = "invalid"
            challenge["error"] = {
                "type": ACME_ERROR + "unauthorized",
                "detail": f"Incorrect key authorization for {domain}",
            }
            authz["status"] = "invalid"

        # The server only reports the outcome on the next poll
        return self._respond(200, self._challenge_json(url) | {"status": "processing"})

    def _finalize(self, signed: SignedRequest, url: str):
        self._require_account(signed)
        order_url = url.replace("/finalize/", "/order/")
        order = self.orders[order_url]
        if self._order_status(order) != "ready":
            raise Problem(403, "orderNotReady", "Order is not ready for finalization")

        csr = x509.load_der_x509_csr(b64url_decode(signed.payload["csr"]))
        names = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        if set(names.get_values_for_type(x509.DNSName)) != {i["value"] for i in order["identifiers"]}:
            raise Problem(400, "badCSR", "CSR names do not match the order")

        leaf = self.ca.issue(csr)
        cert_url = self.url(f"/cert/{self._new_id()}")
        default_chain, alternate_chain = self.ca.chains(leaf)
        self.certificates[cert_url] = {
            "leaf": leaf,
            "chain": default_chain,
            "alternate": alternate_chain,
            "revoked": None,
            "_account": signed.account_url,
        }
        order["status"] = "processing"
        order["_certificate"] = cert_url
        return self._respond(200, self._order_json(order_url), {"Location": order_url})

    def _certificate(self, signed: SignedRequest, url: str):
        self._require_account(signed)
        alternate = url.endswith("/alt")
        certificate = self.certificates[url[: -len("/alt")] if alternate else url]
        if certificate["revoked"] is not None:
            raise Problem(403, "unauthorized", "Certificate has been revoked")

        headers = {"Content-Type": "application/pem-certificate-chain"}
        if alternate:
            return self._respond(200, certificate["alternate"], headers)
        headers["Link"] = f'<{url}/alt>;rel="alternate"'
        return self._respond(200, certificate["chain"], headers)

    def _revoke_cert(self, signed: SignedRequest, url: str):
        self._require_account(signed)
        der = b64url_decode(signed.payload["certificate"])
        for certificate in self.certificates.values():
            if certificate["leaf"].public_bytes(serialization.Encoding.DER) != der:
                continue
            if certificate["_account"] != signed.account_url:
                raise Problem(403, "unauthorized", "Certificate belongs to another account")
            if certificate["revoked"] is not None:
                raise Problem(400, "alreadyRevoked", "Certificate already revoked")
            certificate["revoked"] = signed.payload.get("reason", 0)
            return self._respond(200)
        raise Problem(404, "malformed", "Unknown certificate")


@pytest.fixture(scope="session")
def ca() -> FakeCA:
    return FakeCA()


@pytest.fixture(scope="session")
def account_key() -> bytes:
    return create_private_key()


@pytest.fixture(scope="session")
def ec_account_key() -> bytes:
    return create_ec_private_key()


@pytest.fixture
def server(ca) -> FakeACMEServer:
    return FakeACMEServer(ca)


@pytest.fixture(autouse=True)
def no_sleep():
    with mock.patch("acme_autocert.retry.sleep") as sleep:
        yield sleep


@pytest.fixture
def client(server, account_key) -> ACMEClient:
    return ACMEClient(server.directory_url, account_key, session=server.session())


@pytest.fixture
def challenge_handler(server) -> CallbackChallengeHandler:
    """Publishes challenge responses straight into the fake server's view."""

    def publish(authz, challenge, key_authorization):
        if challenge.type == "http-01":
            server.http_responses[challenge.token] = key_authorization
        else:
            server.dns_records.setdefault(authz.domain, []).append(key_authorization)

    def cleanup(authz, challenge, key_authorization):
        if challenge.type == "http-01":
            server.http_responses.pop(challenge.token, None)
        else:
            server.dns_records.pop(authz.domain, None)

    return CallbackChallengeHandler(publish, cleanup)


@pytest.fixture
def http_get(server):
    """Serve the http-01 verification GETs from what was published."""

    def get(url, timeout=None):
        token = urlsplit(url).path.rsplit("/", 1)[-1]
        if token not in server.http_responses:
            return make_response(404, "Not Found")
        return make_response(200, server.http_responses[token])

    with mock.patch("acme_autocert.acme_client.verify.requests.get", side_effect=get) as patched:
        yield patched
