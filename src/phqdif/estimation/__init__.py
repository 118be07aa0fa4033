from phqdif.estimation.quadrature import GaussHermiteQuadrature

__all__ = [
    "GaussHermiteQuadrature",
]
