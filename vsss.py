"""
Shamir Secret Sharing and Feldman Verifiable Secret Sharing (VSS)

Version 0.1.0
Licensed under the MIT License

A secret integer is embedded as the constant term of a random polynomial over a
prime field and handed out as evaluations ``(index, value)`` at non-zero
points. Any ``threshold`` of them recover the secret by Lagrange interpolation.
Feldman's extension publishes ``C_j = g^a_j mod p`` for every coefficient so a
participant can check their own share against the public commitments without
talking to the dealer or to other participants:

    g^value == prod_j C_j^(index^j)   (mod p)

All big-integer arithmetic is done with gmpy2. Every operation is a pure
function of its arguments; the only configuration is the immutable
:class:`VSSParams` value handed to :class:`FeldmanVSS`.

Security notes:
    * Shamir shares carry no integrity protection. A modified share makes
      reconstruction return a wrong secret without any error.
    * Feldman verification only tells one participant whether their own share
      is consistent with the commitments. It does not detect a dealer who
      hands inconsistent commitments to different participants.
    * Group parameters are never chosen implicitly. Use
      :func:`generate_vss_params` or supply well-formed ``(p, q, g)``.
"""

import hashlib
import hmac
import importlib.util
import logging
import secrets
import time
import warnings
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass, field, replace as dataclass_replace
from typing import (
    Any, Callable, Dict, Iterable, List, Literal, NamedTuple, Optional, Sequence, Tuple, Union
)

import msgpack

if importlib.util.find_spec("blake3"):
    import blake3
    has_blake3 = True
else:
    blake3 = None  # type: ignore
    has_blake3 = False

try:
    import gmpy2
except ImportError as exc:
    raise ImportError(
        "gmpy2 library is required for this module. "
        "Install gmpy2 with: pip install gmpy2"
    ) from exc

__all__ = [
    "Share",
    "Polynomial",
    "VSSParams",
    "FeldmanVSS",
    "get_feldman_vss",
    "generate_polynomial",
    "evaluate_polynomial",
    "interpolate_polynomial",
    "lagrange_interpolate_zero",
    "generate_shares",
    "reconstruct_secret",
    "commit",
    "generate_prime",
    "generate_safe_prime",
    "generate_vss_params",
    "is_probable_prime",
    "is_safe_prime",
    "hash_data",
    "compute_checksum",
    "constant_time_compare",
    "VSSError",
    "ParameterError",
    "InvalidThresholdError",
    "InvalidShareCountError",
    "InvalidDegreeError",
    "InvalidSecretError",
    "InvalidShareError",
    "InvalidGeneratorError",
    "InsufficientSharesError",
    "SingularInterpolationError",
    "SerializationError",
    "SecurityError",
    "VerificationError",
    "SecurityWarning",
    "FieldElement",
    "CommitmentList",
    "VerificationResult",
]
__version__ = "0.1.0"

VSS_VERSION = "VSSS-" + __version__
# Below this size the discrete-log assumption behind the commitments is weak.
MIN_SECURE_PRIME_BITS = 2048
# Miller-Rabin rounds used for every primality decision.
PRIMALITY_TEST_ROUNDS = 25
CHECKSUM_BYTES = 8

logger = logging.getLogger(__name__)

FieldElement = Union[int, "gmpy2.mpz"]
CommitmentList = List["gmpy2.mpz"]
RandBelow = Callable[[int], int]
VerificationResult = Tuple[bool, Dict[int, bool]]

_MPZ_TYPE = type(gmpy2.mpz(0))
_DETAIL_LEVELS = ("low", "medium", "high")


# --- Exceptions ---


class SecurityWarning(Warning):
    """Warning for potentially insecure configurations or operations."""


class VSSError(Exception):
    """Base class for every error raised by this module.

    Messages never contain secrets, coefficients or share values, so the
    forensic data is safe to log.
    """

    default_severity = "error"

    def __init__(
        self,
        message: str,
        detailed_info: Optional[str] = None,
        severity: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detailed_info = detailed_info
        self.severity = severity or self.default_severity
        self.timestamp = int(time.time()) if timestamp is None else timestamp

    def get_forensic_data(self, detail_level: Literal["low", "medium", "high"] = "medium") -> Dict[str, Any]:
        """Return the forensic information as a dictionary."""
        if detail_level not in _DETAIL_LEVELS:
            raise ValueError(f"detail_level must be one of {_DETAIL_LEVELS}, got {detail_level!r}")
        data: Dict[str, Any] = {
            "message": self.message,
            "severity": self.severity,
            "timestamp": self.timestamp,
            "error_type": type(self).__name__,
        }
        if detail_level != "low":
            data["detailed_info"] = self.detailed_info
        return data


class ParameterError(VSSError, ValueError):
    """Exception raised for invalid parameters."""

    def __init__(
        self,
        message: str,
        detailed_info: Optional[str] = None,
        severity: Optional[str] = None,
        timestamp: Optional[int] = None,
        parameter_name: Optional[str] = None,
        parameter_value: Optional[Any] = None,
        expected_type: Optional[str] = None,
    ) -> None:
        super().__init__(message, detailed_info, severity, timestamp)
        self.parameter_name = parameter_name
        self.parameter_value = parameter_value
        self.expected_type = expected_type

    def get_forensic_data(self, detail_level: Literal["low", "medium", "high"] = "medium") -> Dict[str, Any]:
        data = super().get_forensic_data(detail_level)
        data["parameter_name"] = self.parameter_name
        if detail_level == "high":
            data["parameter_value"] = self.parameter_value
            data["expected_type"] = self.expected_type
        return data


class InvalidThresholdError(ParameterError):
    """Threshold is below 1 or above the total share count."""


class InvalidShareCountError(ParameterError):
    """Total share count is below 1 or does not fit in the field."""


class InvalidDegreeError(ParameterError):
    """Requested polynomial degree is negative."""


class InvalidSecretError(ParameterError):
    """Secret lies outside the field it is shared over."""


class InvalidShareError(ParameterError):
    """A share is malformed or uses the reserved index 0."""


class InvalidGeneratorError(ParameterError):
    """Group parameters are inconsistent or the generator has the wrong order."""


class InsufficientSharesError(VSSError, ValueError):
    """Fewer shares were supplied than needed to fix the polynomial."""


class SingularInterpolationError(VSSError, ArithmeticError):
    """Two shares map to the same point, so the interpolation has no solution."""


class SerializationError(VSSError):
    """Exception raised for serialization or deserialization errors."""

    default_severity = "critical"

    def __init__(
        self,
        message: str,
        detailed_info: Optional[str] = None,
        severity: Optional[str] = None,
        timestamp: Optional[int] = None,
        data_format: Optional[str] = None,
    ) -> None:
        super().__init__(message, detailed_info, severity, timestamp)
        self.data_format = data_format


class SecurityError(VSSError):
    """Exception raised for integrity or other security-related failures."""

    default_severity = "critical"


class VerificationError(VSSError):
    """Verification could not be carried out with the supplied material."""

    default_severity = "critical"


# --- Helper functions ---


def _is_integer(value: Any) -> bool:
    return isinstance(value, (int, _MPZ_TYPE)) and not isinstance(value, bool)


def _as_mpz(value: Any, name: str, error_class: type = ParameterError) -> "gmpy2.mpz":
    if not _is_integer(value):
        raise error_class(
            f"{name} must be an integer",
            detailed_info=f"got {type(value).__name__}",
            parameter_name=name,
            expected_type="int",
        )
    return gmpy2.mpz(value)


def _check_modulus(modulus: Any, name: str = "modulus") -> "gmpy2.mpz":
    modulus = _as_mpz(modulus, name)
    if modulus < 2:
        raise ParameterError(
            f"{name} must be at least 2",
            parameter_name=name,
            parameter_value=int(modulus),
        )
    return modulus


def _decode_int(value: Any, name: str) -> "gmpy2.mpz":
    """Parse a serialized integer: a decimal string or a plain int, nothing lossy."""
    if isinstance(value, str) or _is_integer(value):
        return gmpy2.mpz(value)
    raise SerializationError(
        f"Serialized {name} must be a decimal string or an integer",
        detailed_info=f"got {type(value).__name__}",
        data_format="msgpack",
    )


def is_probable_prime(n: FieldElement) -> bool:
    """Miller-Rabin probable-prime test."""
    if not _is_integer(n) or n < 2:
        return False
    return bool(gmpy2.is_prime(gmpy2.mpz(n), PRIMALITY_TEST_ROUNDS))


def is_safe_prime(p: FieldElement) -> bool:
    """Check whether p = 2q + 1 with q prime."""
    if not is_probable_prime(p) or p < 5:
        return False
    return is_probable_prime((gmpy2.mpz(p) - 1) // 2)


def generate_prime(bits: int, randbits: Optional[Callable[[int], int]] = None) -> "gmpy2.mpz":
    """Generate a random probable prime with exactly ``bits`` bits.

    Args:
        bits: Bit length of the prime, at least 2.
        randbits: Source of random bits, ``secrets.randbits`` by default.

    Returns:
        gmpy2.mpz: The prime.
    """
    if not isinstance(bits, int) or bits < 2:
        raise ParameterError("bits must be an integer >= 2", parameter_name="bits", parameter_value=bits)
    randbits = randbits or secrets.randbits
    top_bit = gmpy2.mpz(1) << (bits - 1)
    while True:
        candidate = (gmpy2.mpz(randbits(bits)) % (top_bit << 1)) | top_bit | 1
        if gmpy2.is_prime(candidate, PRIMALITY_TEST_ROUNDS):
            return candidate


def generate_safe_prime(bits: int, randbits: Optional[Callable[[int], int]] = None) -> "gmpy2.mpz":
    """Generate a safe prime ``p = 2q + 1`` with exactly ``bits`` bits.

    This gets slow quickly: expect seconds at 1024 bits and minutes beyond.
    """
    if not isinstance(bits, int) or bits < 3:
        raise ParameterError("bits must be an integer >= 3", parameter_name="bits", parameter_value=bits)
    attempts = 0
    while True:
        attempts += 1
        q = generate_prime(bits - 1, randbits)
        p = 2 * q + 1
        if gmpy2.is_prime(p, PRIMALITY_TEST_ROUNDS):
            logger.debug("Found %d-bit safe prime after %d candidates", bits, attempts)
            return p


def hash_data(data: bytes, use_blake3: bool = True) -> bytes:
    """Hash ``data`` to a 32-byte digest with BLAKE3, or SHA3-256 when BLAKE3 is unavailable."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"data must be bytes-like, got {type(data).__name__}")
    if use_blake3:
        if has_blake3:
            return blake3.blake3(bytes(data)).digest()
        warnings.warn("BLAKE3 requested but not installed. Falling back to SHA3-256.", RuntimeWarning, stacklevel=2)
    return hashlib.sha3_256(bytes(data)).digest()


def compute_checksum(data: bytes, use_blake3: bool = True) -> int:
    """Compute a 64-bit integrity checksum of ``data``."""
    return int.from_bytes(hash_data(data, use_blake3)[:CHECKSUM_BYTES], "big")


def _encode_for_compare(value: Any) -> Tuple[str, bytes]:
    if isinstance(value, (bytes, bytearray)):
        return "bytes", bytes(value)
    if isinstance(value, str):
        return "str", value.encode("utf-8")
    if _is_integer(value):
        number = int(value)
        magnitude = abs(number)
        sign = b"-" if number < 0 else b"+"
        return "int", sign + magnitude.to_bytes((magnitude.bit_length() + 7) // 8 or 1, "big")
    raise TypeError(f"Unsupported type for comparison: {type(value).__name__}")


def constant_time_compare(a: Union[int, str, bytes], b: Union[int, str, bytes]) -> bool:
    """Compare two values in constant time.

    ints and gmpy2 integers compare by value; values of different kinds,
    and ``None``, never compare equal.
    """
    if a is None or b is None:
        return False
    kind_a, encoded_a = _encode_for_compare(a)
    kind_b, encoded_b = _encode_for_compare(b)
    if kind_a != kind_b:
        return False
    return hmac.compare_digest(encoded_a, encoded_b)


# --- Field and polynomials ---


class Share(NamedTuple):
    """One participant's point ``(index, value)`` on the sharing polynomial."""

    index: int
    value: "gmpy2.mpz"


def _invert(value: FieldElement, modulus: "gmpy2.mpz") -> "gmpy2.mpz":
    reduced = gmpy2.f_mod(gmpy2.mpz(value), modulus)
    if reduced == 0:
        raise ZeroDivisionError("zero has no inverse")
    inverse = gmpy2.invert(reduced, modulus)
    # Older gmpy2 releases signal a missing inverse with 0 instead of raising.
    if inverse == 0:
        raise ZeroDivisionError("value is not invertible for this modulus")
    return inverse


class Polynomial:
    """A polynomial ``a0 + a1*x + ... + a(k-1)*x^(k-1)`` over GF(modulus).

    The coefficients reconstruct the secret directly, so the repr hides them
    and instances should be dropped as soon as shares have been derived.
    """

    __slots__ = ("coefficients", "modulus")

    def __init__(self, coefficients: Sequence[FieldElement], modulus: FieldElement) -> None:
        modulus = _check_modulus(modulus)
        if len(coefficients) == 0:
            raise ParameterError("A polynomial needs at least one coefficient", parameter_name="coefficients")
        self.modulus = modulus
        self.coefficients: Tuple["gmpy2.mpz", ...] = tuple(
            gmpy2.f_mod(_as_mpz(c, "coefficient"), modulus) for c in coefficients
        )

    @classmethod
    def generate(
        cls,
        secret: FieldElement,
        degree: int,
        modulus: FieldElement,
        randbelow: Optional[RandBelow] = None,
    ) -> "Polynomial":
        """Build a random polynomial of ``degree`` whose constant term is ``secret mod modulus``.

        Args:
            secret: Value placed in coefficient 0.
            degree: Number of random coefficients after the constant term.
            modulus: Field modulus; every coefficient is drawn from [0, modulus).
            randbelow: Random source, ``secrets.randbelow`` by default.

        Raises:
            InvalidDegreeError: If ``degree`` is negative.
        """
        if not isinstance(degree, int) or isinstance(degree, bool) or degree < 0:
            raise InvalidDegreeError(
                "Polynomial degree must be a non-negative integer",
                parameter_name="degree",
                parameter_value=degree,
            )
        modulus = _check_modulus(modulus)
        randbelow = randbelow or secrets.randbelow
        secret = _as_mpz(secret, "secret", InvalidSecretError)
        coefficients = [secret] + [gmpy2.mpz(randbelow(int(modulus))) for _ in range(degree)]
        return cls(coefficients, modulus)

    @property
    def degree(self) -> int:
        return len(self.coefficients) - 1

    def evaluate(self, x: FieldElement) -> "gmpy2.mpz":
        """Evaluate at ``x`` with Horner's method."""
        x = gmpy2.mpz(x)
        result = gmpy2.mpz(0)
        for coefficient in reversed(self.coefficients):
            result = gmpy2.f_mod(result * x + coefficient, self.modulus)
        return result

    def to_string(self) -> str:
        """Render as ``"a0 + a1x + a2x^2"``. Exposes the coefficients, debugging only."""
        terms = []
        for power, coefficient in enumerate(self.coefficients):
            if power == 0:
                terms.append(f"{coefficient}")
            elif power == 1:
                terms.append(f"{coefficient}x")
            else:
                terms.append(f"{coefficient}x^{power}")
        return " + ".join(terms)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Polynomial):
            return NotImplemented
        return self.modulus == other.modulus and self.coefficients == other.coefficients

    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self.coefficients)

    def __repr__(self) -> str:
        return f"Polynomial(degree={self.degree}, modulus_bits={self.modulus.bit_length()})"


def generate_polynomial(
    secret: FieldElement, degree: int, modulus: FieldElement, randbelow: Optional[RandBelow] = None
) -> Polynomial:
    """Module-level alias of :meth:`Polynomial.generate`."""
    return Polynomial.generate(secret, degree, modulus, randbelow)


def evaluate_polynomial(
    polynomial: Union[Polynomial, Sequence[FieldElement]], x: FieldElement, modulus: FieldElement
) -> "gmpy2.mpz":
    """Evaluate a polynomial, or a bare coefficient sequence, at ``x`` modulo ``modulus``."""
    modulus = _check_modulus(modulus)
    coefficients = polynomial.coefficients if isinstance(polynomial, Polynomial) else polynomial
    return Polynomial(coefficients, modulus).evaluate(x)


# --- Interpolation ---


def _prepare_points(
    points: Iterable[Tuple[FieldElement, FieldElement]], modulus: "gmpy2.mpz"
) -> Tuple[List["gmpy2.mpz"], List["gmpy2.mpz"]]:
    """Validate share points and reduce them into the field."""
    xs: List["gmpy2.mpz"] = []
    ys: List["gmpy2.mpz"] = []
    seen = set()
    for position, point in enumerate(points):
        try:
            index, value = point
        except (TypeError, ValueError) as exc:
            raise InvalidShareError(
                "Share must be an (index, value) pair",
                detailed_info=f"share at position {position}",
                parameter_name="shares",
            ) from exc
        index = _as_mpz(index, "index", InvalidShareError)
        value = _as_mpz(value, "value", InvalidShareError)
        if index <= 0:
            raise InvalidShareError(
                "Share index must be a positive integer; index 0 is reserved",
                detailed_info=f"share at position {position}",
                parameter_name="index",
                parameter_value=int(index),
            )
        x = gmpy2.f_mod(index, modulus)
        if x == 0:
            raise InvalidShareError(
                "Share index is congruent to 0 modulo the field modulus",
                detailed_info=f"share at position {position}",
                parameter_name="index",
                parameter_value=int(index),
            )
        if x in seen:
            raise SingularInterpolationError(
                "Two shares carry the same index",
                detailed_info=f"duplicate index {int(index)} at position {position}",
            )
        seen.add(x)
        xs.append(x)
        ys.append(gmpy2.f_mod(value, modulus))
    if not xs:
        raise InsufficientSharesError("At least one share is required for interpolation")
    return xs, ys


def _basis_denominator_inverse(i: int, xs: Sequence["gmpy2.mpz"], modulus: "gmpy2.mpz") -> "gmpy2.mpz":
    denominator = gmpy2.mpz(1)
    for j, x_j in enumerate(xs):
        if j != i:
            denominator = gmpy2.f_mod(denominator * (xs[i] - x_j), modulus)
    try:
        return _invert(denominator, modulus)
    except ZeroDivisionError as exc:
        raise SingularInterpolationError(
            "Interpolation denominator is not invertible",
            detailed_info="share indices are not pairwise distinct modulo the field, or the modulus is not prime",
        ) from exc


def lagrange_interpolate_zero(
    points: Iterable[Tuple[FieldElement, FieldElement]], modulus: FieldElement
) -> "gmpy2.mpz":
    """Value at ``x = 0`` of the unique polynomial through ``points``, modulo ``modulus``.

    This is the single reconstruction routine shared by Shamir (mod the field
    prime) and Feldman (mod the subgroup order q):

        secret = sum_i y_i * prod_{j != i} (0 - x_j) / (x_i - x_j)

    Raises:
        InsufficientSharesError: If ``points`` is empty.
        InvalidShareError: If a point is malformed or its index is 0 mod ``modulus``.
        SingularInterpolationError: If two indices coincide mod ``modulus``.
    """
    modulus = _check_modulus(modulus)
    xs, ys = _prepare_points(points, modulus)
    secret = gmpy2.mpz(0)
    for i, y_i in enumerate(ys):
        numerator = gmpy2.mpz(1)
        for j, x_j in enumerate(xs):
            if j != i:
                numerator = gmpy2.f_mod(numerator * -x_j, modulus)
        term = y_i * numerator * _basis_denominator_inverse(i, xs, modulus)
        secret = gmpy2.f_mod(secret + term, modulus)
    return secret


def interpolate_polynomial(
    points: Iterable[Tuple[FieldElement, FieldElement]], modulus: FieldElement
) -> Polynomial:
    """Recover the unique polynomial of degree ``len(points) - 1`` through ``points``.

    Each Lagrange basis polynomial is expanded into coefficients and the
    scaled bases are summed.
    """
    modulus = _check_modulus(modulus)
    xs, ys = _prepare_points(points, modulus)
    coefficients = [gmpy2.mpz(0)] * len(xs)
    for i, y_i in enumerate(ys):
        basis = [gmpy2.mpz(1)]
        for j, x_j in enumerate(xs):
            if j == i:
                continue
            # basis *= (x - x_j)
            shifted = [gmpy2.mpz(0)] * (len(basis) + 1)
            for power, coefficient in enumerate(basis):
                shifted[power] = gmpy2.f_mod(shifted[power] - coefficient * x_j, modulus)
                shifted[power + 1] = gmpy2.f_mod(shifted[power + 1] + coefficient, modulus)
            basis = shifted
        scale = gmpy2.f_mod(y_i * _basis_denominator_inverse(i, xs, modulus), modulus)
        for power, coefficient in enumerate(basis):
            coefficients[power] = gmpy2.f_mod(coefficients[power] + coefficient * scale, modulus)
    return Polynomial(coefficients, modulus)


# --- Shamir secret sharing ---


def _check_counts(threshold: Any, total_shares: Any, modulus: "gmpy2.mpz") -> None:
    if not isinstance(total_shares, int) or isinstance(total_shares, bool) or total_shares < 1:
        raise InvalidShareCountError(
            "total_shares must be a positive integer",
            parameter_name="total_shares",
            parameter_value=total_shares,
        )
    if total_shares >= modulus:
        raise InvalidShareCountError(
            "total_shares must be smaller than the modulus so every index is distinct and non-zero",
            parameter_name="total_shares",
            parameter_value=total_shares,
        )
    if not isinstance(threshold, int) or isinstance(threshold, bool) or not 1 <= threshold <= total_shares:
        raise InvalidThresholdError(
            "threshold must satisfy 1 <= threshold <= total_shares",
            detailed_info=f"threshold={threshold!r}, total_shares={total_shares}",
            parameter_name="threshold",
            parameter_value=threshold,
        )


def _check_secret(secret: Any, modulus: "gmpy2.mpz", bound_name: str) -> "gmpy2.mpz":
    secret = _as_mpz(secret, "secret", InvalidSecretError)
    if not 0 <= secret < modulus:
        # The secret itself is deliberately left out of the error.
        raise InvalidSecretError(
            f"secret must lie in [0, {bound_name})",
            parameter_name="secret",
        )
    return secret


def generate_shares(
    secret: FieldElement,
    threshold: int,
    total_shares: int,
    modulus: FieldElement,
    randbelow: Optional[RandBelow] = None,
) -> List[Share]:
    """Split ``secret`` into ``total_shares`` Shamir shares, any ``threshold`` of which recover it.

    Args:
        secret: Integer in [0, modulus).
        threshold: Minimum number of shares needed for reconstruction.
        total_shares: Number of shares to issue, indexed ``1..total_shares``.
        modulus: Prime field modulus.
        randbelow: Random source for the polynomial coefficients.

    Returns:
        list[Share]: ``total_shares`` shares with distinct indices; index 0 is never issued.

    Raises:
        InvalidShareCountError: If ``total_shares < 1`` or ``total_shares >= modulus``.
        InvalidThresholdError: If ``threshold < 1`` or ``threshold > total_shares``.
        InvalidSecretError: If the secret is outside [0, modulus).
        ParameterError: If the modulus is not prime.
    """
    modulus = _check_modulus(modulus)
    _check_counts(threshold, total_shares, modulus)
    if not is_probable_prime(modulus):
        raise ParameterError("modulus must be prime", parameter_name="modulus", parameter_value=int(modulus))
    secret = _check_secret(secret, modulus, "modulus")

    polynomial = Polynomial.generate(secret, threshold - 1, modulus, randbelow)
    shares = [Share(index, polynomial.evaluate(index)) for index in range(1, total_shares + 1)]
    del polynomial
    logger.debug("Generated %d Shamir shares with threshold %d", total_shares, threshold)
    return shares


def reconstruct_secret(
    shares: Iterable[Tuple[FieldElement, FieldElement]],
    modulus: FieldElement,
    threshold: Optional[int] = None,
) -> "gmpy2.mpz":
    """Recover the secret from Shamir shares by Lagrange interpolation at 0.

    Every supplied share is used. Passing ``threshold`` turns a short share
    list into an error; without it at least two shares are required, and a
    list shorter than the real threshold (or mixing two sharings) silently
    yields a wrong value. Shamir shares are not authenticated, so a tampered
    share also yields a wrong value.

    Raises:
        InsufficientSharesError: Too few shares.
        InvalidShareError: Malformed share or index 0.
        SingularInterpolationError: Repeated index.
    """
    shares = list(shares)
    if threshold is None:
        required = 2
    elif not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 1:
        raise InvalidThresholdError(
            "threshold must be a positive integer", parameter_name="threshold", parameter_value=threshold
        )
    else:
        required = threshold
    if len(shares) < required:
        raise InsufficientSharesError(
            f"Need at least {required} shares to reconstruct, got {len(shares)}",
            detailed_info="threshold supplied by caller" if threshold is not None else "no threshold supplied",
        )
    secret = lagrange_interpolate_zero(shares, modulus)
    logger.debug("Reconstructed secret from %d shares", len(shares))
    return secret


# --- Feldman VSS ---


def commit(
    polynomial: Union[Polynomial, Sequence[FieldElement]], g: FieldElement, p: FieldElement
) -> CommitmentList:
    """Commit to every coefficient: ``C_i = g^a_i mod p``."""
    coefficients = polynomial.coefficients if isinstance(polynomial, Polynomial) else list(polynomial)
    if not coefficients:
        raise ParameterError("coefficients cannot be empty", parameter_name="polynomial")
    g = gmpy2.mpz(g)
    p = gmpy2.mpz(p)
    return [gmpy2.powmod(g, gmpy2.mpz(coefficient), p) for coefficient in coefficients]


@dataclass(frozen=True)
class VSSParams:
    """Immutable public parameters of one Feldman sharing.

    Attributes:
        p: Prime modulus of the commitment group.
        q: Prime order of the subgroup generated by ``g``; shares live mod q.
        g: Generator of the order-q subgroup of Z_p^*.
        threshold: Shares needed to reconstruct.
        total_shares: Shares issued.
        validate: Check primality of p and q, ``q | p - 1`` and the order of
            g. With ``validate=False`` the caller vouches for the group and
            bad parameters give silently wrong results.
    """

    p: FieldElement
    q: FieldElement
    g: FieldElement
    threshold: int
    total_shares: int
    validate: bool = field(default=True, compare=False)

    def __post_init__(self) -> None:
        for name in ("p", "q", "g"):
            object.__setattr__(self, name, _as_mpz(getattr(self, name), name, InvalidGeneratorError))
        if self.q < 2:
            raise InvalidGeneratorError("Subgroup order q must be at least 2", parameter_name="q")
        _check_counts(self.threshold, self.total_shares, self.q)
        if self.validate:
            self._validate_group()
        if self.p.bit_length() < MIN_SECURE_PRIME_BITS:
            warnings.warn(
                f"Prime modulus p has {self.p.bit_length()} bits, less than {MIN_SECURE_PRIME_BITS} bits; "
                "commitments may leak coefficients to a discrete-log attacker",
                SecurityWarning,
                stacklevel=3,
            )

    def _validate_group(self) -> None:
        p, q, g = self.p, self.q, self.g
        if not is_probable_prime(p):
            raise InvalidGeneratorError("Modulus p is not prime", parameter_name="p")
        if not is_probable_prime(q):
            raise InvalidGeneratorError("Subgroup order q is not prime", parameter_name="q")
        if (p - 1) % q != 0:
            raise InvalidGeneratorError("q does not divide p - 1", parameter_name="q")
        if not 1 < g < p:
            raise InvalidGeneratorError("Generator must lie in (1, p)", parameter_name="g")
        if gmpy2.powmod(g, q, p) != 1:
            raise InvalidGeneratorError("Generator does not have order q", parameter_name="g")

    def replace(self, **changes: Any) -> "VSSParams":
        """Return a copy with ``changes`` applied and re-validated."""
        return dataclass_replace(self, **changes)


def generate_vss_params(
    bits: int,
    threshold: int,
    total_shares: int,
    randbelow: Optional[RandBelow] = None,
) -> VSSParams:
    """Build fresh parameters over a ``bits``-bit safe prime ``p = 2q + 1``.

    The generator is a random non-trivial quadratic residue, which has order
    q. Safe-prime search dominates the cost.
    """
    randbelow = randbelow or secrets.randbelow
    p = generate_safe_prime(bits)
    q = (p - 1) // 2
    while True:
        h = gmpy2.mpz(randbelow(int(p) - 3)) + 2
        g = gmpy2.powmod(h, 2, p)
        if g != 1:
            break
    logger.info("Generated %d-bit VSS group for a %d-of-%d sharing", bits, threshold, total_shares)
    return VSSParams(p=p, q=q, g=g, threshold=threshold, total_shares=total_shares)


class FeldmanVSS:
    """Feldman verifiable secret sharing over an explicit :class:`VSSParams`.

    Instances carry no state besides the frozen parameters, so one instance
    can serve any number of sharings and threads.
    """

    __slots__ = ("params",)

    def __init__(self, params: VSSParams) -> None:
        if not isinstance(params, VSSParams):
            raise TypeError(f"params must be a VSSParams instance, got {type(params).__name__}")
        self.params = params

    def __repr__(self) -> str:
        return (
            f"FeldmanVSS(threshold={self.params.threshold}, total_shares={self.params.total_shares}, "
            f"p_bits={self.params.p.bit_length()})"
        )

    def create_commitments(self, polynomial: Union[Polynomial, Sequence[FieldElement]]) -> CommitmentList:
        """Commit to the coefficients of ``polynomial`` under this group."""
        return commit(polynomial, self.params.g, self.params.p)

    def generate_shares(
        self, secret: FieldElement, randbelow: Optional[RandBelow] = None
    ) -> Tuple[List[Share], CommitmentList]:
        """Split ``secret`` and publish commitments to the sharing polynomial.

        Args:
            secret: Integer in [0, q).
            randbelow: Random source for the polynomial coefficients.

        Returns:
            tuple: ``(shares, commitments)`` with shares at indices ``1..n``
            and one commitment per coefficient.

        Raises:
            InvalidSecretError: If the secret is outside [0, q).
        """
        params = self.params
        secret = _check_secret(secret, params.q, "q")
        polynomial = Polynomial.generate(secret, params.threshold - 1, params.q, randbelow)
        shares = [Share(index, polynomial.evaluate(index)) for index in range(1, params.total_shares + 1)]
        commitments = self.create_commitments(polynomial)
        del polynomial
        logger.debug(
            "Generated %d Feldman shares and %d commitments", len(shares), len(commitments)
        )
        return shares, commitments

    def verify_share(self, share: Tuple[FieldElement, FieldElement], commitments: CommitmentList) -> bool:
        """Check one share against the public commitments.

        Computes ``g^value`` and ``prod_j C_j^(index^j mod q)`` modulo p and
        compares them. The exponent is reduced mod q because every element of
        the subgroup has order q. Only the share, the commitments and the
        parameters are used.

        Returns:
            bool: True iff the share lies on the committed polynomial. A
            malformed share or commitment list gives False, never an error.
        """
        params = self.params
        try:
            index, value = share
        except (TypeError, ValueError):
            logger.warning("Rejecting malformed share during verification")
            return False
        try:
            # Read once; iterators would otherwise be drained by the type check below
            commitments = list(commitments)
        except TypeError:
            logger.warning("Rejecting non-iterable commitments during verification")
            return False
        if not commitments:
            logger.debug("Share verification requested with no commitments")
            return False
        if not (_is_integer(index) and _is_integer(value)):
            logger.warning("Rejecting share with non-integer components")
            return False
        if not all(_is_integer(c) for c in commitments):
            logger.warning("Rejecting commitment list with non-integer entries")
            return False
        index = gmpy2.mpz(index)
        value = gmpy2.mpz(value)
        if index <= 0 or index % params.q == 0 or not 0 <= value < params.q:
            logger.debug("Share index or value out of range")
            return False

        lhs = gmpy2.powmod(params.g, value, params.p)
        rhs = gmpy2.mpz(1)
        x = index % params.q
        exponent = gmpy2.mpz(1)
        for commitment in commitments:
            rhs = gmpy2.f_mod(rhs * gmpy2.powmod(gmpy2.mpz(commitment), exponent, params.p), params.p)
            exponent = gmpy2.f_mod(exponent * x, params.q)
        return constant_time_compare(lhs, rhs)

    def batch_verify_shares(
        self, shares: Sequence[Tuple[FieldElement, FieldElement]], commitments: CommitmentList
    ) -> VerificationResult:
        """Verify several shares independently.

        Returns:
            tuple: ``(all_valid, results)`` where ``results`` maps each share's
            position in ``shares`` to its verification outcome.
        """
        if isinstance(commitments, (str, bytes)) or not isinstance(commitments, Sequence) or not commitments:
            raise TypeError("commitments must be a non-empty sequence")
        commitments = list(commitments)
        results = {position: self.verify_share(share, commitments) for position, share in enumerate(shares)}
        all_valid = bool(results) and all(results.values())
        if not all_valid:
            logger.info("Batch verification rejected %d of %d shares",
                        sum(1 for ok in results.values() if not ok), len(results))
        return all_valid, results

    def reconstruct_secret(self, verified_shares: Iterable[Tuple[FieldElement, FieldElement]]) -> "gmpy2.mpz":
        """Recover the secret from at least ``threshold`` verified shares, mod q.

        Shares are not re-verified; run :meth:`verify_share` first.
        """
        return reconstruct_secret(verified_shares, self.params.q, threshold=self.params.threshold)

    # --- Serialization ---

    def serialize_commitments(self, commitments: CommitmentList, use_blake3: bool = True) -> str:
        """Pack commitments with the group parameters and an integrity checksum.

        Returns:
            str: urlsafe base64 of a msgpack ``{checksum, algorithm, data}`` wrapper.
        """
        if not isinstance(commitments, list) or not commitments:
            raise TypeError("commitments must be a non-empty list")
        if not all(_is_integer(c) for c in commitments):
            raise TypeError("commitments must contain integers only")
        params = self.params
        payload = {
            "version": VSS_VERSION,
            "p": str(params.p),
            "q": str(params.q),
            "g": str(params.g),
            "threshold": params.threshold,
            "total_shares": params.total_shares,
            "commitments": [str(c) for c in commitments],
        }
        packed = msgpack.packb(payload, use_bin_type=True)
        algorithm = "blake3" if use_blake3 and has_blake3 else "sha3_256"
        wrapper = {
            "checksum": compute_checksum(packed, use_blake3=algorithm == "blake3"),
            "algorithm": algorithm,
            "data": packed,
        }
        return urlsafe_b64encode(msgpack.packb(wrapper, use_bin_type=True)).decode("utf-8")

    def deserialize_commitments(self, data: str) -> Tuple[CommitmentList, VSSParams]:
        """Unpack data produced by :meth:`serialize_commitments`.

        The embedded parameters are validated as a fresh :class:`VSSParams`.

        Raises:
            SerializationError: Undecodable or malformed data.
            SecurityError: Checksum mismatch.
        """
        if not isinstance(data, str) or not data:
            raise SerializationError("Serialized data must be a non-empty string", data_format="base64")
        try:
            wrapper = msgpack.unpackb(urlsafe_b64decode(data.encode("utf-8")), raw=False)
        except Exception as exc:
            raise SerializationError(
                "Failed to decode serialized commitments", detailed_info=str(exc), data_format="msgpack"
            ) from exc
        if not isinstance(wrapper, dict) or not {"checksum", "algorithm", "data"} <= wrapper.keys():
            raise SerializationError("Invalid wrapper structure", data_format="msgpack")
        packed, algorithm = wrapper["data"], wrapper["algorithm"]
        if not isinstance(packed, bytes) or algorithm not in ("blake3", "sha3_256"):
            raise SerializationError("Invalid wrapper contents", data_format="msgpack")
        if algorithm == "blake3" and not has_blake3:
            raise SerializationError("Data was checksummed with BLAKE3, which is not installed")
        checksum = wrapper["checksum"]
        expected = compute_checksum(packed, use_blake3=algorithm == "blake3")
        if not _is_integer(checksum) or not constant_time_compare(checksum, expected):
            raise SecurityError("Data integrity check failed", detailed_info="checksum mismatch")

        try:
            payload = msgpack.unpackb(packed, raw=False)
            if payload["version"] != VSS_VERSION:
                raise SerializationError(
                    "Unsupported serialization version", detailed_info=str(payload["version"])
                )
            commitments = [_decode_int(c, "commitment") for c in payload["commitments"]]
            params = VSSParams(
                p=_decode_int(payload["p"], "p"),
                q=_decode_int(payload["q"], "q"),
                g=_decode_int(payload["g"], "g"),
                threshold=payload["threshold"],
                total_shares=payload["total_shares"],
            )
        except VSSError:
            raise
        except Exception as exc:
            raise SerializationError(
                "Malformed commitment payload", detailed_info=str(exc), data_format="msgpack"
            ) from exc
        if not commitments:
            raise SerializationError("Serialized commitment list is empty")
        return commitments, params

    def verify_share_from_serialized(self, share: Tuple[FieldElement, FieldElement], serialized_commitments: str) -> bool:
        """Verify ``share`` against serialized commitments from the same group.

        Raises:
            VerificationError: If the serialized group differs from this instance's.
        """
        commitments, params = self.deserialize_commitments(serialized_commitments)
        if (params.p, params.q, params.g) != (self.params.p, self.params.q, self.params.g):
            raise VerificationError(
                "Serialized commitments belong to a different group",
                detailed_info="p, q or g mismatch",
            )
        return self.verify_share(share, commitments)


def get_feldman_vss(params: Optional[VSSParams] = None, **kwargs: Any) -> FeldmanVSS:
    """Factory function to create a FeldmanVSS instance.

    Either pass a ready :class:`VSSParams` or its fields as keywords.
    """
    if params is None:
        params = VSSParams(**kwargs)
    elif kwargs:
        params = params.replace(**kwargs)
    return FeldmanVSS(params)
