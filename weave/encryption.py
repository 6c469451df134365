"""Key-file encryption for compressed artifacts.

Layout of an ``.enc`` file::

    header  magic[8] salt[16] nonce_prefix[16] argon_time u32 argon_mem u32 argon_lanes u32
    frame*  ct_len u32, flags u8, ciphertext[ct_len], tag[16]

Each frame is sealed with XChaCha20-Poly1305 under a 24-byte nonce made of the
random prefix and the frame counter. The AAD binds the header, the frame
header and the counter, and the last frame carries ``FRAME_FINAL``, so
dropped, reordered or truncated frames fail authentication.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional

from argon2.low_level import Type as _ArgonType, hash_secret_raw as _argon_hash
from Cryptodome.Cipher import ChaCha20_Poly1305

from .constants import ENCRYPTED_SUFFIX
from .errors import EncryptionError


MAGIC = b"WEAVENC\x01"
KEY_SIZE = 32
SALT_SIZE = 16
NONCE_PREFIX_SIZE = 16
TAG_SIZE = 16
FRAME_SIZE = 1_048_576  # plaintext bytes per frame
FRAME_FINAL = 1 << 0

# Fixed Argon2id parameters for key-file derivation
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 64 * 1024  # 64 MiB
ARGON_PARALLELISM = 4

_HEADER = struct.Struct("<8s16s16sIII")
_FRAME_HDR = struct.Struct("<IB")
_COUNTER = struct.Struct("<Q")


@dataclass
class EncryptionParams:
    salt: bytes
    nonce_prefix: bytes
    time_cost: int = ARGON_TIME_COST
    memory_cost_kib: int = ARGON_MEMORY_COST_KIB
    parallelism: int = ARGON_PARALLELISM

    def pack(self) -> bytes:
        return _HEADER.pack(MAGIC, self.salt, self.nonce_prefix, self.time_cost, self.memory_cost_kib, self.parallelism)

    @classmethod
    def unpack(cls, raw: bytes) -> "EncryptionParams":
        if len(raw) != _HEADER.size:
            raise EncryptionError("Encrypted file is too short for its header")
        magic, salt, prefix, t, m, p = _HEADER.unpack(raw)
        if magic != MAGIC:
            raise EncryptionError("Not a weave encrypted file (bad magic)")
        if (t, m, p) != (ARGON_TIME_COST, ARGON_MEMORY_COST_KIB, ARGON_PARALLELISM):
            raise EncryptionError("Unsupported Argon2 parameters in encrypted file")
        return cls(salt=salt, nonce_prefix=prefix, time_cost=t, memory_cost_kib=m, parallelism=p)


def read_key_material(key_file: str) -> bytes:
    try:
        with open(key_file, "rb") as fh:
            material = fh.read().strip()
    except OSError as exc:
        raise EncryptionError(f"Unable to read key file ({exc.strerror})", key_file) from exc
    if not material:
        raise EncryptionError("Key file is empty", key_file)
    return material


def derive_key(material: bytes, params: EncryptionParams) -> bytes:
    return _argon_hash(
        material,
        params.salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost_kib,
        parallelism=params.parallelism,
        hash_len=KEY_SIZE,
        type=_ArgonType.ID,
    )


class _FrameCipher:
    def __init__(self, key: bytes, params: EncryptionParams):
        self.key = key
        self.prefix = params.nonce_prefix
        self.header = params.pack()
        self.counter = 0

    def _cipher(self, frame_hdr: bytes):
        ctr = _COUNTER.pack(self.counter)
        cipher = ChaCha20_Poly1305.new(key=self.key, nonce=self.prefix + ctr)
        cipher.update(self.header + frame_hdr + ctr)
        return cipher

    def seal(self, plaintext: bytes, final: bool) -> bytes:
        frame_hdr = _FRAME_HDR.pack(len(plaintext), FRAME_FINAL if final else 0)
        ciphertext, tag = self._cipher(frame_hdr).encrypt_and_digest(plaintext)
        self.counter += 1
        return frame_hdr + ciphertext + tag

    def open(self, frame_hdr: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        try:
            plaintext = self._cipher(frame_hdr).decrypt_and_verify(ciphertext, tag)
        except ValueError as exc:
            raise EncryptionError(f"Frame {self.counter} failed authentication (wrong key or corrupted file)") from exc
        self.counter += 1
        return plaintext


def _read_exact(fh: BinaryIO, n: int, what: str) -> bytes:
    buf = fh.read(n)
    if len(buf) != n:
        raise EncryptionError(f"Encrypted file truncated while reading {what}")
    return buf


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def encrypt_file(src: str, key_file: str, dest: Optional[str] = None) -> str:
    """Encrypt ``src`` with the key in ``key_file``; returns the ``.enc`` path."""
    dest = dest or src + ENCRYPTED_SUFFIX
    params = EncryptionParams(salt=os.urandom(SALT_SIZE), nonce_prefix=os.urandom(NONCE_PREFIX_SIZE))
    frames = _FrameCipher(derive_key(read_key_material(key_file), params), params)
    try:
        with open(src, "rb") as inp, open(dest, "wb") as out:
            out.write(frames.header)
            chunk = inp.read(FRAME_SIZE)
            while True:
                ahead = inp.read(FRAME_SIZE)
                out.write(frames.seal(chunk, final=not ahead))
                if not ahead:
                    break
                chunk = ahead
    except OSError as exc:
        _remove_quietly(dest)
        raise EncryptionError(f"Unable to encrypt ({exc})", src) from exc
    return dest


def decrypt_file(src: str, key_file: str, dest: str) -> str:
    """Decrypt an ``.enc`` file into ``dest``; nothing is left behind on failure."""
    material = read_key_material(key_file)
    try:
        with open(src, "rb") as inp, open(dest, "wb") as out:
            params = EncryptionParams.unpack(inp.read(_HEADER.size))
            frames = _FrameCipher(derive_key(material, params), params)
            while True:
                frame_hdr = _read_exact(inp, _FRAME_HDR.size, "frame header")
                length, flags = _FRAME_HDR.unpack(frame_hdr)
                if length > FRAME_SIZE:
                    raise EncryptionError(f"Frame {frames.counter} is larger than {FRAME_SIZE} bytes", src)
                ciphertext = _read_exact(inp, length, "frame data")
                tag = _read_exact(inp, TAG_SIZE, "frame tag")
                out.write(frames.open(frame_hdr, ciphertext, tag))
                if flags & FRAME_FINAL:
                    break
            if inp.read(1):
                raise EncryptionError("Trailing data after final frame", src)
    except EncryptionError:
        _remove_quietly(dest)
        raise
    except OSError as exc:
        _remove_quietly(dest)
        raise EncryptionError(f"Unable to decrypt ({exc})", src) from exc
    return dest
