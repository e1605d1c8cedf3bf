# src/ivp_engine/tableaux.py
"""Preset Butcher tableaux and additive IMEX tableau pairs.

Explicit Runge-Kutta:
    forward Euler, Runge midpoint (2), Heun (2), Heun (3), SSP(3,3), classical
    RK4, the 3/8 rule, Zonneveld 4(3), Fehlberg 4(5), Dormand-Prince 5(4) with
    dense output, Verner 6(5), Fehlberg 7(8).

IMEX ESDIRK (Ascher, Ruuth & Spiteri 1997; Kennedy & Carpenter 2003):
    ARS(1,2,1), ARS(1,2,2), ARS(2,3,3), ARS(2,2,2), ARS(2,3,2), ARS(3,4,3),
    ARS(4,4,3), ARK3(2)4L[2]SA, ARK4(3)6L[2]SA, ARK5(4)8L[2]SA.

Abscissae are omitted wherever they equal the row sums of ``a``.
"""

from __future__ import annotations

import math

import numpy as np

from .interpolants import AdditiveInterpolant, DormandPrinceInterpolant, PolynomialInterpolant
from .schemes import AdditiveTableau, ButcherTableau, Scheme

# =============================================================================
# Explicit Runge-Kutta
# =============================================================================

FORWARD_EULER = ButcherTableau(name="Forward Euler", order=1, a=[[0.0]], b=[1.0])

MIDPOINT = ButcherTableau(
    name="Runge midpoint, order 2",
    order=2,
    a=[[0.0, 0.0], [0.5, 0.0]],
    b=[0.0, 1.0],
)

HEUN2 = ButcherTableau(
    name="Heun, order 2",
    order=2,
    a=[[0.0, 0.0], [1.0, 0.0]],
    b=[0.5, 0.5],
)

HEUN3 = ButcherTableau(
    name="Heun, order 3",
    order=3,
    a=[[0.0, 0.0, 0.0], [1.0 / 3.0, 0.0, 0.0], [0.0, 2.0 / 3.0, 0.0]],
    b=[0.25, 0.0, 0.75],
)

SSP33 = ButcherTableau(
    name="Strong stability preserving (3,3), order 3",
    order=3,
    a=[[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.25, 0.25, 0.0]],
    b=[1.0 / 6.0, 1.0 / 6.0, 2.0 / 3.0],
)

RK4 = ButcherTableau(
    name="Classical Runge-Kutta, order 4",
    order=4,
    a=[
        [0.0, 0.0, 0.0, 0.0],
        [0.5, 0.0, 0.0, 0.0],
        [0.0, 0.5, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
    ],
    b=[1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0],
)

THREE_EIGHTHS = ButcherTableau(
    name="Three-eighths rule, order 4",
    order=4,
    a=[
        [0.0, 0.0, 0.0, 0.0],
        [1.0 / 3.0, 0.0, 0.0, 0.0],
        [-1.0 / 3.0, 1.0, 0.0, 0.0],
        [1.0, -1.0, 1.0, 0.0],
    ],
    b=[1.0 / 8.0, 3.0 / 8.0, 3.0 / 8.0, 1.0 / 8.0],
)

ZONNEVELD43 = ButcherTableau(
    name="Zonneveld, order 4, embedded order 3",
    order=4,
    embedded_order=3,
    a=[
        [0.0, 0.0, 0.0, 0.0, 0.0],
        [0.5, 0.0, 0.0, 0.0, 0.0],
        [0.0, 0.5, 0.0, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0, 0.0],
        [5.0 / 32.0, 7.0 / 32.0, 13.0 / 32.0, -1.0 / 32.0, 0.0],
    ],
    b=[1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0, 0.0],
    b_embedded=[-0.5, 7.0 / 3.0, 7.0 / 3.0, 13.0 / 6.0, -16.0 / 3.0],
)

FEHLBERG45 = ButcherTableau(
    name="Runge-Kutta-Fehlberg, order 4, embedded order 5",
    order=4,
    embedded_order=5,
    a=[
        [0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [1.0 / 4.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [3.0 / 32.0, 9.0 / 32.0, 0.0, 0.0, 0.0, 0.0],
        [1932.0 / 2197.0, -7200.0 / 2197.0, 7296.0 / 2197.0, 0.0, 0.0, 0.0],
        [439.0 / 216.0, -8.0, 3680.0 / 513.0, -845.0 / 4104.0, 0.0, 0.0],
        [-8.0 / 27.0, 2.0, -3544.0 / 2565.0, 1859.0 / 4104.0, -11.0 / 40.0, 0.0],
    ],
    b=[25.0 / 216.0, 0.0, 1408.0 / 2565.0, 2197.0 / 4104.0, -1.0 / 5.0, 0.0],
    b_embedded=[
        16.0 / 135.0,
        0.0,
        6656.0 / 12825.0,
        28561.0 / 56430.0,
        -9.0 / 50.0,
        2.0 / 55.0,
    ],
)

DORMAND_PRINCE54 = ButcherTableau(
    name="Dormand-Prince, order 5, embedded order 4",
    order=5,
    embedded_order=4,
    fsal=True,
    interpolant=DormandPrinceInterpolant(),
    a=[
        [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [1.0 / 5.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [3.0 / 40.0, 9.0 / 40.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [44.0 / 45.0, -56.0 / 15.0, 32.0 / 9.0, 0.0, 0.0, 0.0, 0.0],
        [19372.0 / 6561.0, -25360.0 / 2187.0, 64448.0 / 6561.0, -212.0 / 729.0, 0.0, 0.0, 0.0],
        [
            9017.0 / 3168.0,
            -355.0 / 33.0,
            46732.0 / 5247.0,
            49.0 / 176.0,
            -5103.0 / 18656.0,
            0.0,
            0.0,
        ],
        [35.0 / 384.0, 0.0, 500.0 / 1113.0, 125.0 / 192.0, -2187.0 / 6784.0, 11.0 / 84.0, 0.0],
    ],
    b=[35.0 / 384.0, 0.0, 500.0 / 1113.0, 125.0 / 192.0, -2187.0 / 6784.0, 11.0 / 84.0, 0.0],
    c=[0.0, 1.0 / 5.0, 3.0 / 10.0, 4.0 / 5.0, 8.0 / 9.0, 1.0, 1.0],
    b_embedded=[
        5179.0 / 57600.0,
        0.0,
        7571.0 / 16695.0,
        393.0 / 640.0,
        -92097.0 / 339200.0,
        187.0 / 2100.0,
        1.0 / 40.0,
    ],
)

VERNER65 = ButcherTableau(
    name="Verner, order 6, embedded order 5",
    order=6,
    embedded_order=5,
    a=[
        [0.0] * 8,
        [1.0 / 6.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [4.0 / 75.0, 16.0 / 75.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [5.0 / 6.0, -8.0 / 3.0, 5.0 / 2.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [-165.0 / 64.0, 55.0 / 6.0, -425.0 / 64.0, 85.0 / 96.0, 0.0, 0.0, 0.0, 0.0],
        [12.0 / 5.0, -8.0, 4015.0 / 612.0, -11.0 / 36.0, 88.0 / 255.0, 0.0, 0.0, 0.0],
        [
            -8263.0 / 15000.0,
            124.0 / 75.0,
            -643.0 / 680.0,
            -81.0 / 250.0,
            2484.0 / 10625.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            3501.0 / 1720.0,
            -300.0 / 43.0,
            297275.0 / 52632.0,
            -319.0 / 2322.0,
            24068.0 / 84065.0,
            0.0,
            3850.0 / 26703.0,
            0.0,
        ],
    ],
    b=[
        3.0 / 40.0,
        0.0,
        875.0 / 2244.0,
        23.0 / 72.0,
        264.0 / 1955.0,
        0.0,
        125.0 / 11592.0,
        43.0 / 616.0,
    ],
    b_embedded=[
        13.0 / 160.0,
        0.0,
        2375.0 / 5984.0,
        5.0 / 16.0,
        12.0 / 85.0,
        3.0 / 44.0,
        0.0,
        0.0,
    ],
)


def _fehlberg78() -> ButcherTableau:
    a = np.zeros((13, 13))
    a[1, 0] = 2.0 / 27.0
    a[2, :2] = [1.0 / 36.0, 1.0 / 12.0]
    a[3, :3] = [1.0 / 24.0, 0.0, 1.0 / 8.0]
    a[4, :4] = [5.0 / 12.0, 0.0, -25.0 / 16.0, 25.0 / 16.0]
    a[5, :5] = [1.0 / 20.0, 0.0, 0.0, 1.0 / 4.0, 1.0 / 5.0]
    a[6, :6] = [-25.0 / 108.0, 0.0, 0.0, 125.0 / 108.0, -65.0 / 27.0, 125.0 / 54.0]
    a[7, :7] = [31.0 / 300.0, 0.0, 0.0, 0.0, 61.0 / 225.0, -2.0 / 9.0, 13.0 / 900.0]
    a[8, :8] = [2.0, 0.0, 0.0, -53.0 / 6.0, 704.0 / 45.0, -107.0 / 9.0, 67.0 / 90.0, 3.0]
    a[9, :9] = [
        -91.0 / 108.0,
        0.0,
        0.0,
        23.0 / 108.0,
        -976.0 / 135.0,
        311.0 / 54.0,
        -19.0 / 60.0,
        17.0 / 6.0,
        -1.0 / 12.0,
    ]
    a[10, :10] = [
        2383.0 / 4100.0,
        0.0,
        0.0,
        -341.0 / 164.0,
        4496.0 / 1025.0,
        -301.0 / 82.0,
        2133.0 / 4100.0,
        45.0 / 82.0,
        45.0 / 164.0,
        18.0 / 41.0,
    ]
    a[11, :11] = [
        3.0 / 205.0,
        0.0,
        0.0,
        0.0,
        0.0,
        -6.0 / 41.0,
        -3.0 / 205.0,
        -3.0 / 41.0,
        3.0 / 41.0,
        6.0 / 41.0,
        0.0,
    ]
    a[12, :12] = [
        -1777.0 / 4100.0,
        0.0,
        0.0,
        -341.0 / 164.0,
        4496.0 / 1025.0,
        -289.0 / 82.0,
        2193.0 / 4100.0,
        51.0 / 82.0,
        33.0 / 164.0,
        12.0 / 41.0,
        0.0,
        1.0,
    ]
    b = np.zeros(13)
    b[[0, 10]] = 41.0 / 840.0
    b[5] = 34.0 / 105.0
    b[[6, 7]] = 9.0 / 35.0
    b[[8, 9]] = 9.0 / 280.0
    b_emb = np.zeros(13)
    b_emb[5] = 34.0 / 105.0
    b_emb[[6, 7]] = 9.0 / 35.0
    b_emb[[8, 9]] = 9.0 / 280.0
    b_emb[[11, 12]] = 41.0 / 840.0
    return ButcherTableau(
        name="Runge-Kutta-Fehlberg, order 7, embedded order 8",
        order=7,
        embedded_order=8,
        a=a,
        b=b,
        b_embedded=b_emb,
    )


FEHLBERG78 = _fehlberg78()


# =============================================================================
# IMEX: Ascher, Ruuth & Spiteri
# =============================================================================


def _imex(
    name: str,
    order: int,
    explicit: tuple[list[list[float]], list[float]],
    implicit: tuple[list[list[float]], list[float]],
) -> AdditiveTableau:
    a_hat, b_hat = explicit
    a, b = implicit
    return AdditiveTableau(
        name=name,
        order=order,
        explicit=ButcherTableau(name=f"{name} (explicit)", order=order, a=a_hat, b=b_hat),
        implicit=ButcherTableau(name=f"{name} (implicit)", order=order, a=a, b=b),
    )


ARS121 = _imex(
    "ARS(1,2,1) forward-backward Euler, order 1",
    1,
    ([[0.0, 0.0], [1.0, 0.0]], [0.0, 1.0]),
    ([[0.0, 0.0], [0.0, 1.0]], [0.0, 1.0]),
)

ARS122 = _imex(
    "ARS(1,2,2) implicit-explicit midpoint, order 2",
    2,
    ([[0.0, 0.0], [0.5, 0.0]], [0.0, 1.0]),
    ([[0.0, 0.0], [0.0, 0.5]], [0.0, 1.0]),
)

_G233 = (3.0 + math.sqrt(3.0)) / 6.0
ARS233 = _imex(
    "ARS(2,3,3), order 3",
    3,
    (
        [[0.0, 0.0, 0.0], [_G233, 0.0, 0.0], [_G233 - 1.0, 2.0 * (1.0 - _G233), 0.0]],
        [0.0, 0.5, 0.5],
    ),
    (
        [[0.0, 0.0, 0.0], [0.0, _G233, 0.0], [0.0, 1.0 - 2.0 * _G233, _G233]],
        [0.0, 0.5, 0.5],
    ),
)

_G22 = (2.0 - math.sqrt(2.0)) / 2.0
_D222 = 1.0 - 1.0 / (2.0 * _G22)
ARS222 = _imex(
    "ARS(2,2,2) L-stable, order 2",
    2,
    (
        [[0.0, 0.0, 0.0], [_G22, 0.0, 0.0], [_D222, 1.0 - _D222, 0.0]],
        [_D222, 1.0 - _D222, 0.0],
    ),
    (
        [[0.0, 0.0, 0.0], [0.0, _G22, 0.0], [0.0, 1.0 - _G22, _G22]],
        [0.0, 1.0 - _G22, _G22],
    ),
)

_D232 = -2.0 * math.sqrt(2.0) / 3.0
ARS232 = _imex(
    "ARS(2,3,2) L-stable, order 2",
    2,
    (
        [[0.0, 0.0, 0.0], [_G22, 0.0, 0.0], [_D232, 1.0 - _D232, 0.0]],
        [0.0, 1.0 - _G22, _G22],
    ),
    (
        [[0.0, 0.0, 0.0], [0.0, _G22, 0.0], [0.0, 1.0 - _G22, _G22]],
        [0.0, 1.0 - _G22, _G22],
    ),
)

_G343 = 0.4358665215
_B343 = [0.0, 1.208496649, -0.644363171, _G343]
ARS343 = _imex(
    "ARS(3,4,3) L-stable, order 3",
    3,
    (
        [
            [0.0, 0.0, 0.0, 0.0],
            [_G343, 0.0, 0.0, 0.0],
            [0.3212788860, 0.3966543747, 0.0, 0.0],
            [-0.105858296, 0.5529291479, 0.5529291479, 0.0],
        ],
        _B343,
    ),
    (
        [
            [0.0, 0.0, 0.0, 0.0],
            [0.0, _G343, 0.0, 0.0],
            [0.0, 0.2820667392, _G343, 0.0],
            _B343,
        ],
        _B343,
    ),
)

ARS443 = _imex(
    "ARS(4,4,3) L-stable, order 3",
    3,
    (
        [
            [0.0, 0.0, 0.0, 0.0, 0.0],
            [1.0 / 2.0, 0.0, 0.0, 0.0, 0.0],
            [11.0 / 18.0, 1.0 / 18.0, 0.0, 0.0, 0.0],
            [5.0 / 6.0, -5.0 / 6.0, 1.0 / 2.0, 0.0, 0.0],
            [1.0 / 4.0, 7.0 / 4.0, 3.0 / 4.0, -7.0 / 4.0, 0.0],
        ],
        [1.0 / 4.0, 7.0 / 4.0, 3.0 / 4.0, -7.0 / 4.0, 0.0],
    ),
    (
        [
            [0.0, 0.0, 0.0, 0.0, 0.0],
            [0.0, 1.0 / 2.0, 0.0, 0.0, 0.0],
            [0.0, 1.0 / 6.0, 1.0 / 2.0, 0.0, 0.0],
            [0.0, -1.0 / 2.0, 1.0 / 2.0, 1.0 / 2.0, 0.0],
            [0.0, 3.0 / 2.0, -3.0 / 2.0, 1.0 / 2.0, 1.0 / 2.0],
        ],
        [0.0, 3.0 / 2.0, -3.0 / 2.0, 1.0 / 2.0, 1.0 / 2.0],
    ),
)


# =============================================================================
# IMEX: Kennedy & Carpenter additive Runge-Kutta
# =============================================================================


def _ark(
    name: str,
    order: int,
    embedded_order: int,
    explicit_a: list[list[float]],
    implicit_a: list[list[float]],
    b: list[float],
    b_embedded: list[float],
    dense: list[list[float]] | None = None,
) -> AdditiveTableau:
    explicit = ButcherTableau(
        name=f"{name} (explicit)",
        order=order,
        embedded_order=embedded_order,
        a=explicit_a,
        b=b,
        b_embedded=b_embedded,
    )
    implicit = ButcherTableau(
        name=f"{name} (implicit)",
        order=order,
        embedded_order=embedded_order,
        a=implicit_a,
        b=b,
        b_embedded=b_embedded,
    )
    if dense is None:
        return AdditiveTableau(name=name, order=order, explicit=explicit, implicit=implicit)
    return AdditiveTableau(
        name=name,
        order=order,
        explicit=explicit,
        implicit=implicit,
        interpolant=AdditiveInterpolant(
            PolynomialInterpolant(dense), PolynomialInterpolant(dense)
        ),
    )


_G32 = 1767732205903.0 / 4055673282236.0
_B32 = [
    1471266399579.0 / 7840856788654.0,
    -4482444167858.0 / 7529755066697.0,
    11266239266428.0 / 11593286722821.0,
    _G32,
]
KC32 = _ark(
    "ARK3(2)4L[2]SA, order 3, embedded order 2",
    3,
    2,
    [
        [0.0, 0.0, 0.0, 0.0],
        [2.0 * _G32, 0.0, 0.0, 0.0],
        [5535828885825.0 / 10492691773637.0, 788022342437.0 / 10882634858940.0, 0.0, 0.0],
        [
            6485989280629.0 / 16251701735622.0,
            -4246266847089.0 / 9704473918619.0,
            10755448449292.0 / 10357097424841.0,
            0.0,
        ],
    ],
    [
        [0.0, 0.0, 0.0, 0.0],
        [_G32, _G32, 0.0, 0.0],
        [2746238789719.0 / 10658868560708.0, -640167445237.0 / 6845629431997.0, _G32, 0.0],
        _B32,
    ],
    _B32,
    [
        2756255671327.0 / 12835298489170.0,
        -10771552573575.0 / 22201958757719.0,
        9247589265047.0 / 10645013368117.0,
        2193209047091.0 / 5459859503100.0,
    ],
)

_B43 = [
    82889.0 / 524892.0,
    0.0,
    15625.0 / 83664.0,
    69875.0 / 102672.0,
    -2260.0 / 8211.0,
    1.0 / 4.0,
]
KC43 = _ark(
    "ARK4(3)6L[2]SA, order 4, embedded order 3",
    4,
    3,
    [
        [0.0] * 6,
        [1.0 / 2.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [13861.0 / 62500.0, 6889.0 / 62500.0, 0.0, 0.0, 0.0, 0.0],
        [
            -116923316275.0 / 2393684061468.0,
            -2731218467317.0 / 15368042101831.0,
            9408046702089.0 / 11113171139209.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            -451086348788.0 / 2902428689909.0,
            -2682348792572.0 / 7519795681897.0,
            12662868775082.0 / 11960479115383.0,
            3355817975965.0 / 11060851509271.0,
            0.0,
            0.0,
        ],
        [
            647845179188.0 / 3216320057751.0,
            73281519250.0 / 8382639484533.0,
            552539513391.0 / 3454668386233.0,
            3354512671639.0 / 8306763924573.0,
            4040.0 / 17871.0,
            0.0,
        ],
    ],
    [
        [0.0] * 6,
        [1.0 / 4.0, 1.0 / 4.0, 0.0, 0.0, 0.0, 0.0],
        [8611.0 / 62500.0, -1743.0 / 31250.0, 1.0 / 4.0, 0.0, 0.0, 0.0],
        [5012029.0 / 34652500.0, -654441.0 / 2922500.0, 174375.0 / 388108.0, 1.0 / 4.0, 0.0, 0.0],
        [
            15267082809.0 / 155376265600.0,
            -71443401.0 / 120774400.0,
            730878875.0 / 902184768.0,
            2285395.0 / 8070912.0,
            1.0 / 4.0,
            0.0,
        ],
        _B43,
    ],
    _B43,
    [
        4586570599.0 / 29645900160.0,
        0.0,
        178811875.0 / 945068544.0,
        814220225.0 / 1159782912.0,
        -3700637.0 / 11593932.0,
        61727.0 / 225920.0,
    ],
    dense=[
        [
            6943876665148.0 / 7220017795957.0,
            -54480133.0 / 30881146.0,
            6818779379841.0 / 7100303317025.0,
        ],
        [0.0, 0.0, 0.0],
        [
            7640104374378.0 / 9702883013639.0,
            -11436875.0 / 14766696.0,
            2173542590792.0 / 12501825683035.0,
        ],
        [
            -20649996744609.0 / 7521556579894.0,
            174696575.0 / 18121608.0,
            -31592104683404.0 / 5083833661969.0,
        ],
        [
            8854892464581.0 / 2390941311638.0,
            -12120380.0 / 966161.0,
            61146701046299.0 / 7138195549469.0,
        ],
        [
            -11397109935349.0 / 6675773540249.0,
            3843.0 / 706.0,
            -17219254887155.0 / 4939391667607.0,
        ],
    ],
)

_G54 = 41.0 / 200.0
_B54 = [
    -872700587467.0 / 9133579230613.0,
    0.0,
    0.0,
    22348218063261.0 / 9555858737531.0,
    -1143369518992.0 / 8141816002931.0,
    -39379526789629.0 / 19018526304540.0,
    32727382324388.0 / 42900044865799.0,
    _G54,
]
KC54 = _ark(
    "ARK5(4)8L[2]SA, order 5, embedded order 4",
    5,
    4,
    [
        [0.0] * 8,
        [41.0 / 100.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [
            367902744464.0 / 2072280473677.0,
            677623207551.0 / 8224143866563.0,
            0.0,
            0.0,
            0.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            1268023523408.0 / 10340822734521.0,
            0.0,
            1029933939417.0 / 13636558850479.0,
            0.0,
            0.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            14463281900351.0 / 6315353703477.0,
            0.0,
            66114435211212.0 / 5879490589093.0,
            -54053170152839.0 / 4284798021562.0,
            0.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            14090043504691.0 / 34967701212078.0,
            0.0,
            15191511035443.0 / 11219624916014.0,
            -18461159152457.0 / 12425892160975.0,
            -281667163811.0 / 9011619295870.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            19230459214898.0 / 13134317526959.0,
            0.0,
            21275331358303.0 / 2942455364971.0,
            -38145345988419.0 / 4862620318723.0,
            -1.0 / 8.0,
            -1.0 / 8.0,
            0.0,
            0.0,
        ],
        [
            -19977161125411.0 / 11928030595625.0,
            0.0,
            -40795976796054.0 / 6384907823539.0,
            177454434618887.0 / 12078138498510.0,
            782672205425.0 / 8267701900261.0,
            -69563011059811.0 / 9646580694205.0,
            7356628210526.0 / 4942186776405.0,
            0.0,
        ],
    ],
    [
        [0.0] * 8,
        [_G54, _G54, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [41.0 / 400.0, -567603406766.0 / 11931857230679.0, _G54, 0.0, 0.0, 0.0, 0.0, 0.0],
        [
            683785636431.0 / 9252920307686.0,
            0.0,
            -110385047103.0 / 1367015193373.0,
            _G54,
            0.0,
            0.0,
            0.0,
            0.0,
        ],
        [
            3016520224154.0 / 10081342136671.0,
            0.0,
            30586259806659.0 / 12414158314087.0,
            -22760509404356.0 / 11113319521817.0,
            _G54,
            0.0,
            0.0,
            0.0,
        ],
        [
            218866479029.0 / 1489978393911.0,
            0.0,
            638256894668.0 / 5436446318841.0,
            -1179710474555.0 / 5321154724896.0,
            -60928119172.0 / 8023461067671.0,
            _G54,
            0.0,
            0.0,
        ],
        [
            1020004230633.0 / 5715676835656.0,
            0.0,
            25762820946817.0 / 25263940353407.0,
            -2161375909145.0 / 9755907335909.0,
            -211217309593.0 / 5846859502534.0,
            -4269925059573.0 / 7827059040749.0,
            _G54,
            0.0,
        ],
        _B54,
    ],
    _B54,
    [
        -975461918565.0 / 9796059967033.0,
        0.0,
        0.0,
        78070527104295.0 / 32432590147079.0,
        -548382580838.0 / 3424219808633.0,
        -33438840321285.0 / 15594753105479.0,
        3629800801594.0 / 4656183773603.0,
        4035322873751.0 / 18575991585200.0,
    ],
    dense=[
        [
            -17674230611817.0 / 10670229744614.0,
            43486358583215.0 / 12773830924787.0,
            -9257016797708.0 / 5021505065439.0,
        ],
        [0.0, 0.0, 0.0],
        [0.0, 0.0, 0.0],
        [
            65168852399939.0 / 7868540260826.0,
            -91478233927265.0 / 11067650958493.0,
            26096422576131.0 / 11239449250142.0,
        ],
        [
            15494834004392.0 / 5936557850923.0,
            -79368583304911.0 / 10890268929626.0,
            92396832856987.0 / 20362823103730.0,
        ],
        [
            -99329723586156.0 / 26959484932159.0,
            -12239297817655.0 / 9152339842473.0,
            30029262896817.0 / 10175596800299.0,
        ],
        [
            -19024464361622.0 / 5461577185407.0,
            115839755401235.0 / 10719374521269.0,
            -26136350496073.0 / 3983972220547.0,
        ],
        [
            -6511271360970.0 / 6095937251113.0,
            5843115559534.0 / 2180450260947.0,
            -5289405421727.0 / 3760307252460.0,
        ],
    ],
)


# =============================================================================
# Partitioned schemes
# =============================================================================

STORMER_VERLET = Scheme(name="Stormer-Verlet, order 2", order=2)


# =============================================================================
# Registries
# =============================================================================

EXPLICIT_TABLEAUX: dict[str, ButcherTableau] = {
    "forward-euler": FORWARD_EULER,
    "midpoint": MIDPOINT,
    "heun2": HEUN2,
    "heun3": HEUN3,
    "ssp33": SSP33,
    "rk4": RK4,
    "three-eighths": THREE_EIGHTHS,
    "zonneveld43": ZONNEVELD43,
    "fehlberg45": FEHLBERG45,
    "dormand-prince54": DORMAND_PRINCE54,
    "verner65": VERNER65,
    "fehlberg78": FEHLBERG78,
}

IMEX_TABLEAUX: dict[str, AdditiveTableau] = {
    "ars121": ARS121,
    "ars122": ARS122,
    "ars233": ARS233,
    "ars222": ARS222,
    "ars232": ARS232,
    "ars343": ARS343,
    "ars443": ARS443,
    "kc32": KC32,
    "kc43": KC43,
    "kc54": KC54,
}
