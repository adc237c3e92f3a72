"""Proof schemas and the issuing-service response parser."""
import hashlib
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

PUBLIC_SIGNAL_COUNT = 3


def _to_int(value: Any) -> int:
    """Parse a field element given as int, decimal string or 0x-hex string."""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a field element")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    raise ValueError(f"Unsupported field element type: {type(value).__name__}")


class ProofPayload(BaseModel):
    """Groth16 proof in the layout the verifying contract accepts."""

    model_config = ConfigDict(frozen=True)

    a: Tuple[int, int]
    b: Tuple[Tuple[int, int], Tuple[int, int]]
    c: Tuple[int, int]
    public_signals: Tuple[int, int, int]

    @property
    def email_hash(self) -> int:
        return self.public_signals[0]

    @property
    def domain_hash(self) -> int:
        return self.public_signals[1]

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_PROOF

    def as_contract_arg(self) -> tuple:
        """Tuple matching the `execute` proof struct."""
        return (
            list(self.a),
            [list(self.b[0]), list(self.b[1])],
            list(self.c),
            list(self.public_signals),
        )


EMPTY_PROOF = ProofPayload(
    a=(0, 0),
    b=((0, 0), (0, 0)),
    c=(0, 0),
    public_signals=(0, 0, 0),
)


class RawProof(BaseModel):
    """snarkjs-style proof as returned by the issuing service."""

    pi_a: List[Any] = Field(..., min_length=2)
    pi_b: List[List[Any]] = Field(..., min_length=2)
    pi_c: List[Any] = Field(..., min_length=2)

    @field_validator("pi_b")
    @classmethod
    def validate_pi_b(cls, v: List[List[Any]]) -> List[List[Any]]:
        """The first two rows must each hold a coordinate pair."""
        for row in v[:2]:
            if len(row) < 2:
                raise ValueError("pi_b rows must hold two coordinates")
        return v


class ProofResponse(BaseModel):
    """Issuing service response envelope."""

    success: bool
    proof: Optional[RawProof] = None
    public_signals: Optional[List[Any]] = Field(default=None, alias="publicSignals")
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_payload(self) -> ProofPayload:
        """Reshape into the on-chain argument layout.

        G2 coordinates of `pi_b` are stored by the prover in reversed element
        order relative to the verifier, so each pair is flipped. The
        projective third coordinates are dropped and signals are truncated to
        the verifier's fixed vector length.
        """
        if self.proof is None:
            raise ValueError("Response has no proof")
        if self.public_signals is None or len(self.public_signals) < PUBLIC_SIGNAL_COUNT:
            raise ValueError(f"Response must carry at least {PUBLIC_SIGNAL_COUNT} public signals")

        pi_a = [_to_int(x) for x in self.proof.pi_a[:2]]
        pi_b = [[_to_int(x) for x in row[:2]] for row in self.proof.pi_b[:2]]
        pi_c = [_to_int(x) for x in self.proof.pi_c[:2]]
        signals = [_to_int(x) for x in self.public_signals[:PUBLIC_SIGNAL_COUNT]]

        return ProofPayload(
            a=(pi_a[0], pi_a[1]),
            b=((pi_b[0][1], pi_b[0][0]), (pi_b[1][1], pi_b[1][0])),
            c=(pi_c[0], pi_c[1]),
            public_signals=(signals[0], signals[1], signals[2]),
        )


class SessionContext(BaseModel):
    """Caller session forwarded to the proof issuing service."""

    model_config = ConfigDict(frozen=True)

    cookie: Optional[str] = None
    authorization: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.cookie or self.authorization)

    @property
    def cache_key(self) -> str:
        """Digest of the credentials, used to key per-session caches."""
        if self.is_empty:
            return "anonymous"
        raw = f"{self.cookie or ''}\n{self.authorization or ''}"
        return hashlib.sha256(raw.encode()).hexdigest()

    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.cookie:
            headers["Cookie"] = self.cookie
        if self.authorization:
            headers["Authorization"] = self.authorization
        return headers
