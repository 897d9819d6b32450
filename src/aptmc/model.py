"""
Posterior definition.

A Posterior bundles the pure functions the engine evaluates: the
log-likelihood, the log-prior, and an optional support predicate. Callers
construct one explicitly and hand it to the sampler; there is no global
table of models selected by name.

Example usage:
    import jax.numpy as jnp
    from aptmc import Posterior

    posterior = Posterior(
        log_likelihood=lambda x: -0.5 * jnp.sum((x - 3.0) ** 2),
        log_prior=lambda x: -0.5 * jnp.sum(x ** 2) / 100.0,
        in_support=lambda x: jnp.all(x > 0),
        name='shifted_normal',
    )

All three functions take a 1-D parameter vector and must be traceable by
JAX (no Python control flow on values). States outside the support, and
NaN or infinite density values, are rejected by the sampler rather than
raised.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import jax.numpy as jnp

from .error_handling import ConfigurationError


def flat_log_prior(state):
    """Improper flat prior: 0 everywhere."""
    return jnp.zeros((), dtype=state.dtype)


@dataclass(frozen=True)
class Posterior:
    """
    Model definition consumed by the LogDensity evaluator.

    Attributes:
        log_likelihood: fn(state) -> scalar, untempered log-likelihood
        log_prior: fn(state) -> scalar (default: flat prior)
        in_support: fn(state) -> bool scalar, or None if every real vector
            is in the support
        name: Label used in logs and checkpoints
    """
    log_likelihood: Callable
    log_prior: Callable = flat_log_prior
    in_support: Optional[Callable] = None
    name: str = 'posterior'

    def __post_init__(self):
        missing = [
            field for field in ('log_likelihood', 'log_prior')
            if not callable(getattr(self, field))
        ]
        if self.in_support is not None and not callable(self.in_support):
            missing.append('in_support')
        if missing:
            raise ConfigurationError(
                f"Posterior '{self.name}' needs callables for: {missing}"
            )
