"""
Workload primitives
CPU-burning and allocating building blocks shared by the simulators
"""
import math
import random
import uuid
from typing import List, Optional


def _rng(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else random.Random()


def sort_random_array(n: int, rng: Optional[random.Random] = None) -> List[int]:
    """Fill an array with n random ints and sort it."""
    rng = _rng(rng)
    array = [rng.randrange(2**31 - 1) for _ in range(n)]
    array.sort()
    return array


def sieve_of_primes(max_value: int) -> List[bool]:
    """Classic boolean sieve; index i is True when i is prime."""
    if max_value < 1:
        return [False] * (max_value + 1)
    is_prime = [True] * (max_value + 1)
    is_prime[0] = is_prime[1] = False

    i = 2
    while i * i <= max_value:
        if is_prime[i]:
            for j in range(i * i, max_value + 1, i):
                is_prime[j] = False
        i += 1
    return is_prime


def multiply_matrices(size: int, rng: Optional[random.Random] = None) -> List[List[float]]:
    """Naive O(n^3) product of two random size x size matrices."""
    rng = _rng(rng)
    a = [[rng.random() for _ in range(size)] for _ in range(size)]
    b = [[rng.random() for _ in range(size)] for _ in range(size)]
    c = [[0.0] * size for _ in range(size)]

    for i in range(size):
        row_a = a[i]
        row_c = c[i]
        for j in range(size):
            total = 0.0
            for k in range(size):
                total += row_a[k] * b[k][j]
            row_c[j] = total
    return c


def fibonacci_recursive(n: int) -> int:
    if n <= 1:
        return n
    return fibonacci_recursive(n - 1) + fibonacci_recursive(n - 2)


def complex_math(iterations: int) -> float:
    """Iterated transcendental chain to keep the FPU busy."""
    result = 0.0
    for i in range(iterations):
        result += math.sin(i) * math.cos(i) / (math.tan(i) + 0.1)
        try:
            result = math.pow(abs(result), 1.01)
        except OverflowError:
            result = math.inf
        if not math.isfinite(result):
            result = 0.0
        if i % 1000 == 0:
            result = math.sqrt(result)
    return result


def string_churn(iterations: int) -> str:
    """Repeated UUID concatenation with periodic upper-casing."""
    parts = []
    text = ""
    for i in range(iterations):
        parts.append(str(uuid.uuid4()))
        if i % 100 == 0:
            text = (text + "".join(parts)).upper()
            parts = []
    return text + "".join(parts)
