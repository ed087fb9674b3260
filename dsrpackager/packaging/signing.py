"""Detached signatures for release catalogs.

The catalog file is signed with an RSA key read from a PEM keyring (or a
single DER key) that is handed over in memory, usually staged from
environment variables. The signature uses RSA-PSS over the SHA-256 digest
of the file and is written ASCII-armored next to it as ``<file>.asc``.

Secret inputs are held in ``bytearray`` buffers and overwritten with zeros
before any signing call returns, whether it succeeded or not. Secrets are
never turned into ``str`` objects, which cannot be wiped.
"""

from __future__ import annotations

import base64
import hashlib
import os
import re
import textwrap
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from dsrpackager.utils.exceptions import NoSigningKeyError, SigningError

ARMOR_LABEL = "DSRPACKAGER SIGNATURE"
SIGNATURE_SUFFIX = ".asc"
CHUNK_SIZE = 64 * 1024

SecretInput = Union[bytearray, bytes, str, None]

_PEM_BLOCK_RE = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----.*?-----END \1-----", re.DOTALL)
_ARMOR_RE = re.compile(
    r"-----BEGIN " + ARMOR_LABEL + r"-----\r?\n(?P<headers>(?:[A-Za-z-]+: .*\r?\n)*)\r?\n"
    r"(?P<body>[A-Za-z0-9+/=\r\n]+?)\r?\n?-----END " + ARMOR_LABEL + r"-----"
)


def wipe(buffer: Optional[bytearray]) -> None:
    """Overwrite a buffer with zeros, keeping its length."""
    if buffer is None:
        return
    buffer[:] = bytes(len(buffer))


def _as_secret(value: SecretInput) -> bytearray:
    if value is None:
        return bytearray()
    if isinstance(value, bytearray):
        return value
    if isinstance(value, str):
        return bytearray(value, "utf-8")
    return bytearray(value)


def signature_path(path: Union[str, Path]) -> Path:
    path = Path(path)
    return path.with_name(path.name + SIGNATURE_SUFFIX)


def _pss() -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.MAX_LENGTH)


def _load_private_key(data: memoryview, passphrase: bytearray, der: bool = False):
    loader = serialization.load_der_private_key if der else serialization.load_pem_private_key
    try:
        return loader(data, password=passphrase)
    except TypeError:
        # Key is not encrypted, the passphrase is not needed
        return loader(data, password=None)


def select_signing_key(key_material: bytearray, passphrase: bytearray) -> rsa.RSAPrivateKey:
    """Pick the first RSA private key of a keyring.

    PEM blocks that are not private keys, and private keys of algorithms
    other than RSA, are skipped.

    Args:
        key_material: PEM keyring or DER private key
        passphrase: Passphrase of encrypted keys

    Returns:
        The signing key

    Raises:
        NoSigningKeyError: If the keyring holds no RSA private key
        SigningError: If a private key cannot be decrypted or parsed
    """
    with memoryview(key_material) as material:
        blocks = [
            (m.group(1), m.start(), m.end())
            for m in _PEM_BLOCK_RE.finditer(key_material)
        ]

        if not blocks:
            if b"-----BEGIN" in key_material:
                raise SigningError("Key material has no complete PEM block")
            try:
                key = _load_private_key(material, passphrase, der=True)
            except (ValueError, TypeError, UnsupportedAlgorithm) as e:
                raise SigningError(f"Failed to load private key: {e}") from e
            if isinstance(key, rsa.RSAPrivateKey):
                return key
            raise NoSigningKeyError("Key material holds no RSA signing key")

        for label, start, end in blocks:
            if not label.endswith(b"PRIVATE KEY") or label.startswith(b"OPENSSH"):
                continue
            with material[start:end] as block:
                try:
                    key = _load_private_key(block, passphrase)
                except (ValueError, TypeError, UnsupportedAlgorithm) as e:
                    raise SigningError(f"Failed to load private key: {e}") from e
            if isinstance(key, rsa.RSAPrivateKey):
                return key

    raise NoSigningKeyError("Key material holds no RSA signing key")


def file_digest(path: Union[str, Path], chunk_size: int = CHUNK_SIZE) -> bytes:
    hasher = hashes.Hash(hashes.SHA256())
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.finalize()


def key_fingerprint(public_key: rsa.RSAPublicKey) -> str:
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return hashlib.sha256(der).hexdigest()


def armor(signature: bytes, fingerprint: str) -> bytes:
    body = "\n".join(textwrap.wrap(base64.b64encode(signature).decode("ascii"), 64))
    text = (
        f"-----BEGIN {ARMOR_LABEL}-----\n"
        "Hash: SHA256\n"
        "Scheme: RSA-PSS\n"
        f"Key-Fingerprint: {fingerprint}\n"
        "\n"
        f"{body}\n"
        f"-----END {ARMOR_LABEL}-----\n"
    )
    return text.encode("ascii")


def dearmor(data: Union[bytes, str]) -> Tuple[Dict[str, str], bytes]:
    """Split an armored signature into its headers and raw signature bytes.

    Raises:
        ValueError: If the data is not an armored signature
    """
    text = data.decode("ascii") if isinstance(data, bytes) else data
    match = _ARMOR_RE.search(text)
    if not match:
        raise ValueError("Not an armored signature")
    headers = {}
    for line in match.group("headers").splitlines():
        name, _, value = line.partition(": ")
        headers[name] = value
    body = "".join(match.group("body").split())
    return headers, base64.b64decode(body)


def sign_file(
        path: Union[str, Path],
        key_material: SecretInput,
        passphrase: SecretInput,
        chunk_size: int = CHUNK_SIZE
) -> Optional[bytes]:
    """Write a detached signature of a file to ``<path>.asc``.

    Signing is skipped, and None returned, when either the key material or
    the passphrase is empty. ``bytearray`` inputs are wiped in place before
    returning; ``str`` and ``bytes`` inputs are copied into buffers that are
    wiped, but the caller's immutable objects cannot be.

    Args:
        path: File to sign
        key_material: PEM keyring or DER private key
        passphrase: Passphrase of the key
        chunk_size: Read size used while hashing the file

    Returns:
        The armored signature, or None if signing was skipped

    Raises:
        NoSigningKeyError: If the key material holds no RSA private key
        SigningError: If the key cannot be loaded or the file cannot be signed
    """
    key_buffer = _as_secret(key_material)
    passphrase_buffer = _as_secret(passphrase)
    private_key = None
    try:
        if not key_buffer or not passphrase_buffer:
            return None

        private_key = select_signing_key(key_buffer, passphrase_buffer)

        try:
            digest = file_digest(path, chunk_size)
            signature = private_key.sign(digest, _pss(), Prehashed(hashes.SHA256()))
            armored = armor(signature, key_fingerprint(private_key.public_key()))
            signature_path(path).write_bytes(armored)
        except OSError as e:
            raise SigningError(f"Failed to sign {path}: {e}") from e

        return armored
    finally:
        private_key = None
        wipe(key_buffer)
        wipe(passphrase_buffer)


def verify_file(
        path: Union[str, Path],
        signature: Union[bytes, str, Path],
        public_key_pem: bytes
) -> bool:
    """Check a detached signature against a file.

    Args:
        path: Signed file
        signature: Armored signature, or the path of the ``.asc`` file
        public_key_pem: PEM public key of the signer

    Returns:
        True if the signature is valid for the file
    """
    if isinstance(signature, Path):
        signature = signature.read_bytes()
    try:
        _, raw = dearmor(signature)
    except ValueError:
        return False

    public_key = serialization.load_pem_public_key(public_key_pem)
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False

    try:
        public_key.verify(raw, file_digest(path), _pss(), Prehashed(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False


def load_secrets_from_env(
        key_var: str,
        passphrase_var: str,
        purge: bool = True
) -> Tuple[bytearray, bytearray]:
    """Stage the signing key and passphrase from environment variables.

    Missing variables yield empty buffers, which disables signing.

    Args:
        key_var: Variable holding the key material
        passphrase_var: Variable holding the passphrase
        purge: Remove both variables from the process environment

    Returns:
        Tuple of (key material, passphrase) buffers owned by the caller
    """
    getter = os.environ.pop if purge else os.environ.get
    key_material = bytearray(getter(key_var, ""), "utf-8")
    passphrase = bytearray(getter(passphrase_var, ""), "utf-8")
    return key_material, passphrase
