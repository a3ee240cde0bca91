from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

import numpy as np
import scipy.stats as st


class Target(Protocol):
    """Unnormalized log posterior over an unconstrained parameter vector."""

    @property
    def dim(self) -> int:
        ...

    def log_density(self, theta: np.ndarray) -> np.ndarray:
        """Log density per chain for theta of shape (chains, dim)."""
        ...

    def constrain(self, theta: np.ndarray) -> dict[str, np.ndarray]:
        """Named parameters on their natural scale, each of shape (chains,)."""
        ...


def _vector(data: Mapping[str, Any], key: str) -> np.ndarray:
    if key not in data:
        raise ValueError(f"data is missing '{key}'")
    out = np.asarray(data[key], dtype=float)
    if out.ndim != 1 or out.size == 0:
        raise ValueError(f"data['{key}'] must be a non-empty vector")
    return out


@dataclass(frozen=True)
class NormalTarget:
    """y ~ normal(mu, sigma); mu ~ normal(0, 10), log(sigma) ~ normal(0, 2.5)."""

    y: np.ndarray

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> "NormalTarget":
        return cls(y=_vector(data, "y"))

    @property
    def dim(self) -> int:
        return 2

    def log_density(self, theta: np.ndarray) -> np.ndarray:
        mu = theta[:, 0]
        log_sigma = theta[:, 1]
        sigma = np.exp(log_sigma)
        lik = st.norm.logpdf(self.y[None, :], loc=mu[:, None], scale=sigma[:, None]).sum(axis=1)
        return lik + st.norm.logpdf(mu, scale=10.0) + st.norm.logpdf(log_sigma, scale=2.5)

    def constrain(self, theta: np.ndarray) -> dict[str, np.ndarray]:
        return {"mu": theta[:, 0].copy(), "sigma": np.exp(theta[:, 1])}


@dataclass(frozen=True)
class EightSchoolsTarget:
    """Non-centered hierarchical model of the eight schools example.

    theta = mu + tau * eta; y ~ normal(theta, sigma); eta ~ normal(0, 1);
    mu ~ normal(0, 5); tau ~ half-cauchy(0, 5), sampled as log(tau).
    """

    y: np.ndarray
    sigma: np.ndarray

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> "EightSchoolsTarget":
        y = _vector(data, "y")
        sigma = _vector(data, "sigma")
        n = int(data.get("n", y.size))
        if y.size != n or sigma.size != n:
            raise ValueError(f"y and sigma must both have length n={n}")
        if np.any(sigma <= 0):
            raise ValueError("sigma must be positive")
        return cls(y=y, sigma=sigma)

    @property
    def dim(self) -> int:
        return 2 + self.y.size

    def log_density(self, theta: np.ndarray) -> np.ndarray:
        mu = theta[:, 0]
        log_tau = theta[:, 1]
        eta = theta[:, 2:]
        tau = np.exp(log_tau)
        school = mu[:, None] + tau[:, None] * eta
        lp = st.norm.logpdf(self.y[None, :], loc=school, scale=self.sigma[None, :]).sum(axis=1)
        lp += st.norm.logpdf(eta).sum(axis=1)
        lp += st.norm.logpdf(mu, scale=5.0)
        # log-Jacobian of tau = exp(log_tau)
        lp += st.halfcauchy.logpdf(tau, scale=5.0) + log_tau
        return lp

    def constrain(self, theta: np.ndarray) -> dict[str, np.ndarray]:
        mu = theta[:, 0]
        tau = np.exp(theta[:, 1])
        out = {"mu": mu.copy(), "tau": tau}
        for j in range(self.y.size):
            out[f"eta[{j + 1}]"] = theta[:, 2 + j].copy()
        for j in range(self.y.size):
            out[f"theta[{j + 1}]"] = mu + tau * theta[:, 2 + j]
        return out


TARGETS: dict[str, Callable[[Mapping[str, Any]], Target]] = {
    "normal": NormalTarget.from_data,
    "eight_schools": EightSchoolsTarget.from_data,
}


def build_target(name: str, data: Mapping[str, Any]) -> Target:
    try:
        factory = TARGETS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown model '{name}'; available: {', '.join(sorted(TARGETS))}") from None
    return factory(data)
