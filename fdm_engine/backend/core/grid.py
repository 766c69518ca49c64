"""
Spatial Mesh and Layout for the PDE Solver

═══════════════════════════════════════════════════════════════════════════════
SPATIAL DISCRETIZATION IN LOG-PRICE
═══════════════════════════════════════════════════════════════════════════════

1. LOG-PRICE TRANSFORMATION:
   ═══════════════════════════════════════════════════════════════════════════

   The mesh is laid out in x = ln(S):

   - Diffusion coefficient σ²/2 no longer depends on S
   - Uniform steps in x are geometric steps in S
   - Inverse: S = e^x

   Derivative transformations (used by the Greeks):
   ∂/∂S = (1/S)∂/∂x
   ∂²/∂S² = (1/S²)(∂²/∂x² - ∂/∂x)

2. MESH RANGE:
   ═══════════════════════════════════════════════════════════════════════════

   Centered at today's log-spot and wide enough to hold all but a tiny
   probability mass ε of the terminal distribution:

   x_min = ln(S₀) - σ√T · N⁻¹(1-ε) · scale
   x_max = ln(S₀) + σ√T · N⁻¹(1-ε) · scale

   Typical values: ε = 10⁻⁴, scale = 1.5  →  about ±5.6 standard deviations.

3. LAYOUT / INDEXING:
   ═══════════════════════════════════════════════════════════════════════════

   A d-dimensional mesh with sizes (n₀, n₁, ...) is stored as a flat array.
   The first dimension varies fastest:

   index(c₀, c₁, ...) = c₀·1 + c₁·n₀ + c₂·n₀n₁ + ...

   so the points with c₁ = c₂ = ... = 0 are the contiguous prefix
   [0, n₀) of the flat array. first_dimension_indices() makes that
   contract explicit.

═══════════════════════════════════════════════════════════════════════════════
"""

import math
import warnings
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm


class LayoutPoint(NamedTuple):
    """One point of the flat mesh: its position and per-dimension coordinates."""
    index: int
    coordinates: Tuple[int, ...]


class LinearOpLayout:
    """
    Flat-index layout of a multi-dimensional mesh (first dimension fastest).
    """

    def __init__(self, dim: Sequence[int]):
        if len(dim) == 0:
            raise ValueError("layout needs at least one dimension")
        if any(int(n) < 1 for n in dim):
            raise ValueError(f"all dimensions must be positive, got {tuple(dim)}")

        self.dim: Tuple[int, ...] = tuple(int(n) for n in dim)

        spacing = [1]
        for n in self.dim[:-1]:
            spacing.append(spacing[-1] * n)
        self.spacing: Tuple[int, ...] = tuple(spacing)
        self.size = int(np.prod(self.dim))

    @property
    def ndim(self) -> int:
        return len(self.dim)

    def index(self, coordinates: Sequence[int]) -> int:
        return int(sum(c * s for c, s in zip(coordinates, self.spacing)))

    def coordinates(self, index: int) -> Tuple[int, ...]:
        if not 0 <= index < self.size:
            raise IndexError(f"index {index} outside layout of size {self.size}")
        return tuple((index // s) % n for s, n in zip(self.spacing, self.dim))

    def __iter__(self) -> Iterator[LayoutPoint]:
        for i in range(self.size):
            yield LayoutPoint(i, self.coordinates(i))

    def __len__(self) -> int:
        return self.size

    def first_dimension_indices(self) -> np.ndarray:
        """Flat indices of the points whose other coordinates are all zero."""
        return np.arange(self.dim[0]) * self.spacing[0]

    def as_tensor(self, values: np.ndarray) -> np.ndarray:
        """
        View a flat array as an ndarray with axis -1 = dimension 0,
        axis -2 = dimension 1, ...
        """
        return np.asarray(values).reshape(self.dim[::-1])

    def axis(self, direction: int) -> int:
        """ndarray axis of `direction` in as_tensor()."""
        return self.ndim - 1 - direction


# ═══════════════════════════════════════════════════════════════════════════════
# ONE-DIMENSIONAL MESHERS
# ═══════════════════════════════════════════════════════════════════════════════

class Fdm1dMesher:
    """
    Ordered locations along one dimension, with forward/backward spacings.

    dplus[i]  = x[i+1] - x[i]   (NaN at the upper edge)
    dminus[i] = x[i] - x[i-1]   (NaN at the lower edge)
    """

    def __init__(self, locations: Sequence[float]):
        x = np.asarray(locations, dtype=float)
        if x.ndim != 1 or x.size < 2:
            raise ValueError("a 1d mesher needs at least two locations")

        self.locations = x
        self.dplus = np.append(np.diff(x), np.nan)
        self.dminus = np.insert(np.diff(x), 0, np.nan)

    @property
    def size(self) -> int:
        return self.locations.size


class Uniform1dMesher(Fdm1dMesher):
    """x_i = start + i·(end - start)/(size - 1)"""

    def __init__(self, start: float, end: float, size: int):
        if not end > start:
            raise ValueError(f"end ({end}) must be greater than start ({start})")
        if size < 2:
            raise ValueError(f"size must be at least 2, got {size}")
        super().__init__(np.linspace(start, end, size))


class Concentrating1dMesher(Fdm1dMesher):
    """
    Mesh concentrated around c_point using a sinh map.

    Mapping:
    ═══════════════════════════════════════════════════════════════════════════
    c₁ = asinh((start - c)/δ),  c₂ = asinh((end - c)/δ)
    x_i = c + δ·sinh(c₁(1 - u_i) + c₂u_i),   u_i = i/(size - 1)

    with δ = density·(end - start). Small density → strong concentration.
    ═══════════════════════════════════════════════════════════════════════════
    """

    def __init__(
        self,
        start: float,
        end: float,
        size: int,
        c_point: float,
        density: float = 0.1
    ):
        if not end > start:
            raise ValueError(f"end ({end}) must be greater than start ({start})")
        if size < 2:
            raise ValueError(f"size must be at least 2, got {size}")
        if density <= 0:
            raise ValueError(f"density must be positive, got {density}")

        delta = density * (end - start)
        c1 = math.asinh((start - c_point) / delta)
        c2 = math.asinh((end - c_point) / delta)

        u = np.linspace(0.0, 1.0, size)
        x = c_point + delta * np.sinh(c1 * (1.0 - u) + c2 * u)
        x[0], x[-1] = start, end
        super().__init__(x)
        self.c_point = c_point
        self.density = density


# ═══════════════════════════════════════════════════════════════════════════════
# COMPOSITE MESHER
# ═══════════════════════════════════════════════════════════════════════════════

class FdmMesherComposite:
    """
    Tensor product of one-dimensional meshers with its layout.

    Dimension 0 is always the log-price.
    """

    def __init__(self, *meshers: Fdm1dMesher):
        if not meshers:
            raise ValueError("at least one 1d mesher is required")
        self.meshers: List[Fdm1dMesher] = list(meshers)
        self.layout = LinearOpLayout([m.size for m in meshers])

    def location(self, point: LayoutPoint, direction: int) -> float:
        return float(self.meshers[direction].locations[point.coordinates[direction]])

    def dplus(self, point: LayoutPoint, direction: int) -> float:
        return float(self.meshers[direction].dplus[point.coordinates[direction]])

    def dminus(self, point: LayoutPoint, direction: int) -> float:
        return float(self.meshers[direction].dminus[point.coordinates[direction]])

    def locations(self, direction: int) -> np.ndarray:
        """Location along `direction` of every point of the flat mesh."""
        layout = self.layout
        idx = (np.arange(layout.size) // layout.spacing[direction]) % layout.dim[direction]
        return self.meshers[direction].locations[idx]

    def summary(self) -> str:
        lines = ["Mesher Summary:"]
        for d, m in enumerate(self.meshers):
            x = m.locations
            lines.append(
                f"  dim {d}: [{x[0]:.4f}, {x[-1]:.4f}], N={m.size}, "
                f"min Δx={np.nanmin(m.dplus):.4f}, max Δx={np.nanmax(m.dplus):.4f}"
            )
        lines.append(f"  total points: {self.layout.size}")
        return "\n".join(lines)


def black_scholes_mesher(
    size: int,
    process,
    maturity: float,
    strike: float,
    eps: float = 1e-4,
    scale_factor: float = 1.5,
    x_min: Optional[float] = None,
    x_max: Optional[float] = None,
    concentration: Optional[float] = None
) -> Fdm1dMesher:
    """
    Log-spot mesher sized from the terminal distribution.

    Args:
        size: Number of mesh points
        process: BlackScholesProcess (spot and Black volatility are read once)
        maturity: Option maturity T
        strike: Strike, used as the concentration point
        eps: Tail probability left outside the mesh on each side
        scale_factor: Extra widening of the ±N⁻¹(1-ε)σ√T range
        x_min, x_max: Explicit log-price bounds overriding the heuristic
        concentration: If given, density of a sinh concentration around ln(K)

    Returns:
        One-dimensional mesher in x = ln(S)
    """
    if maturity <= 0:
        raise ValueError(f"maturity must be positive, got {maturity}")

    x0 = math.log(process.x0)
    sigma_sqrt_t = process.black_volatility * math.sqrt(maturity)
    half_width = sigma_sqrt_t * norm.ppf(1.0 - eps) * scale_factor

    lo = x0 - half_width if x_min is None else x_min
    hi = x0 + half_width if x_max is None else x_max
    if not hi > lo:
        raise ValueError(
            f"degenerate mesh range [{lo}, {hi}]; with zero volatility "
            f"pass x_min/x_max explicitly"
        )

    if not lo <= x0 <= hi:
        warnings.warn(
            f"spot ln(S₀)={x0:.4f} lies outside the mesh [{lo:.4f}, {hi:.4f}]; "
            "the solver will reject queries at the spot"
        )

    if concentration is not None and strike > 0 and lo < math.log(strike) < hi:
        return Concentrating1dMesher(lo, hi, size, math.log(strike), concentration)
    return Uniform1dMesher(lo, hi, size)


def create_default_mesher(
    process,
    maturity: float,
    strike: Optional[float] = None,
    size: Optional[int] = None
) -> FdmMesherComposite:
    """
    Create a mesher suitable for the process and maturity.

    Sizing Heuristics:
    ═══════════════════════════════════════════════════════════════════════════
    - N = 200 points (≥ 100 per 1y of maturity)
    - ε = 10⁻⁴, scale 1.5
    - uniform in ln(S), so the monotone spline sees evenly spaced knots
    ═══════════════════════════════════════════════════════════════════════════
    """
    K = strike if strike is not None else process.x0
    if size is None:
        size = max(200, int(100 * maturity))
    return FdmMesherComposite(black_scholes_mesher(size, process, maturity, K))
