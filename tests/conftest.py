# tests/conftest.py
# Shared fixtures, helper functions, and configuration for the vsss test suite

import logging
import os
import secrets
import sys
import time
import warnings
from typing import Any, Optional

import pytest

# --- Dependency Handling & Checks ---
try:
    import gmpy2
    from gmpy2 import mpz
except ImportError:
    print("CRITICAL ERROR: gmpy2 library not found. vsss requires gmpy2. Aborting tests.")
    sys.exit(1)  # gmpy2 is mandatory

try:
    import blake3  # noqa: F401

    HAS_BLAKE3 = True
except ImportError:
    HAS_BLAKE3 = False
    print("Warning: blake3 library not found, checksums fall back to SHA3-256.")

try:
    import psutil

    HAS_PSUTIL = True
except ImportError:
    HAS_PSUTIL = False
    print("Warning: psutil not found, memory tracing of performance tests is disabled.")

import vsss
from vsss import FeldmanVSS, Share, VSSParams, generate_safe_prime

# --- Test Configuration ---
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
test_logger = logging.getLogger("vsss_pytest")

SCENARIO_PRIME_BITS = 61  # Safe prime size of the reference scenario
TEST_PRIME_BITS_FAST = 128
DEFAULT_THRESHOLD = 3
DEFAULT_NUM_SHARES = 5
LARGE_N = int(os.environ.get("VSS_LARGE_N", 50))
LARGE_T = int(os.environ.get("VSS_LARGE_T", 20))
LARGE_PRIME_BITS = int(os.environ.get("VSS_LARGE_PRIME_BITS", 512))

RUN_PERFORMANCE_TESTS = os.environ.get("RUN_PERFORMANCE_TESTS", "0") == "1"

# Small hand-checkable group: p = 23 = 2 * 11 + 1, g = 4 has order 11.
TINY_P = 23
TINY_Q = 11
TINY_G = 4

# --- Helper Functions ---

_prime_cache: dict[int, mpz] = {}


def get_safe_prime(bits: int) -> mpz:
    """Returns a safe prime of ``bits`` bits, cached for the test session."""
    if bits not in _prime_cache:
        start_time = time.monotonic()
        _prime_cache[bits] = generate_safe_prime(bits)
        test_logger.info(f"Generated {bits}-bit safe prime in {time.monotonic() - start_time:.2f}s.")
    return _prime_cache[bits]


def make_params(p: mpz, threshold: int = DEFAULT_THRESHOLD, total_shares: int = DEFAULT_NUM_SHARES) -> VSSParams:
    """VSSParams over safe prime ``p`` with generator 4, a non-trivial quadratic residue."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", vsss.SecurityWarning)
        return VSSParams(p=p, q=(p - 1) // 2, g=4, threshold=threshold, total_shares=total_shares)


def sequential_randbelow(values: list[int]):
    """Deterministic ``randbelow`` replacement that hands out ``values`` in order."""
    remaining = list(values)

    def randbelow(bound: int) -> int:
        return remaining.pop(0) % bound

    return randbelow


# --- Pytest Fixtures ---


@pytest.fixture(scope="session")
def scenario_prime() -> mpz:
    """A 61-bit safe prime."""
    return get_safe_prime(SCENARIO_PRIME_BITS)


@pytest.fixture(scope="session")
def test_prime_fast() -> mpz:
    """A 128-bit safe prime for general tests."""
    return get_safe_prime(TEST_PRIME_BITS_FAST)


@pytest.fixture(scope="session")
def default_params(test_prime_fast: mpz) -> VSSParams:
    """3-of-5 parameters over the 128-bit group."""
    return make_params(test_prime_fast)


@pytest.fixture(scope="session")
def default_vss(default_params: VSSParams) -> FeldmanVSS:
    return FeldmanVSS(default_params)


@pytest.fixture(scope="session")
def tiny_vss() -> FeldmanVSS:
    """2-of-4 over the 23-element group."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", vsss.SecurityWarning)
        return FeldmanVSS(VSSParams(p=TINY_P, q=TINY_Q, g=TINY_G, threshold=2, total_shares=4))


@pytest.fixture
def test_secret(default_params: VSSParams) -> mpz:
    """A random secret below the subgroup order."""
    return mpz(secrets.randbelow(int(default_params.q)))


@pytest.fixture
def feldman_sharing(default_vss: FeldmanVSS, test_secret: mpz) -> tuple[list[Share], list[mpz]]:
    """Shares and commitments for ``test_secret``."""
    return default_vss.generate_shares(test_secret)


@pytest.fixture
def test_shares(feldman_sharing: tuple[list[Share], list[mpz]]) -> list[Share]:
    return feldman_sharing[0]


@pytest.fixture
def test_commitments(feldman_sharing: tuple[list[Share], list[mpz]]) -> list[mpz]:
    return feldman_sharing[1]


@pytest.fixture(scope="session")
def large_test_data() -> Optional[dict[str, Any]]:
    """Large-scale parameters, shares and commitments for performance tests.

    Only set up when RUN_PERFORMANCE_TESTS is enabled.
    """
    if not RUN_PERFORMANCE_TESTS:
        return None

    local_large_n = max(5, LARGE_N)
    local_large_t = max(2, min(LARGE_T, local_large_n))
    test_logger.info(f"\nSetting up Large Scale Test Data (n={local_large_n}, t={local_large_t})...")
    start_setup = time.perf_counter()

    params = make_params(get_safe_prime(LARGE_PRIME_BITS), local_large_t, local_large_n)
    vss = FeldmanVSS(params)
    secret = mpz(secrets.randbelow(int(params.q)))
    shares, commitments = vss.generate_shares(secret)

    test_logger.info(f"Large scale setup complete ({time.perf_counter() - start_setup:.2f}s).")
    return {
        "vss": vss,
        "params": params,
        "n": local_large_n,
        "t": local_large_t,
        "secret": secret,
        "shares": shares,
        "commitments": commitments,
    }


# --- Pytest Hooks ---


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "performance: mark test as a performance benchmark (skipped by default)")
    config.addinivalue_line("markers", "security: mark test as specifically security-related")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "properties: mark test as a property-based test (requires Hypothesis)")

    warnings.simplefilter("default", vsss.SecurityWarning)
    warnings.simplefilter("default", RuntimeWarning)


def pytest_collection_modifyitems(config, items):
    """Skip performance tests unless requested."""
    if not RUN_PERFORMANCE_TESTS:
        skip_performance = pytest.mark.skip(reason="Performance tests not requested (set RUN_PERFORMANCE_TESTS=1)")
        for item in items:
            if "performance" in item.keywords:
                item.add_marker(skip_performance)


@pytest.fixture(autouse=True)
def trace_memory(request):
    """Trace memory usage during performance tests."""
    marker = request.node.get_closest_marker("performance")
    if marker and HAS_PSUTIL and RUN_PERFORMANCE_TESTS:
        import tracemalloc

        process = psutil.Process(os.getpid())
        mem_before = process.memory_info().rss
        tracemalloc.start()
        yield
        _, peak = tracemalloc.get_traced_memory()
        tracemalloc.stop()
        mem_after = process.memory_info().rss
        test_logger.debug(
            f" Test Memory ({request.node.name}): Peak Alloc={peak / (1024 * 1024):.2f}MB, "
            f"Process RSS diff={(mem_after - mem_before) / (1024 * 1024):.2f}MB"
        )
    else:
        yield
