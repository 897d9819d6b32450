"""
Tempered log-density evaluation.

    evaluate(state, beta) -> (tempered, log_lik, log_prior)

Two tempering modes:
    temper_prior=False:  tempered = beta * log_lik + log_prior
    temper_prior=True:   tempered = beta * (log_lik + log_prior)

Out-of-support states and non-finite values (NaN, overflow) evaluate to
-inf in all three outputs, which every caller treats as a rejection.
"""

import jax.numpy as jnp


def make_log_density(posterior, temper_prior: bool = False):
    """
    Build the pure tempered log-density function for a posterior.

    The returned function closes over nothing mutable, so it can be vmapped
    across rungs and called repeatedly with identical results.

    Args:
        posterior: Posterior with log_likelihood, log_prior, in_support
        temper_prior: If True, the prior is raised to the same power as the
            likelihood

    Returns:
        evaluate(state, beta) -> (tempered, log_lik, log_prior)
    """
    log_likelihood_fn = posterior.log_likelihood
    log_prior_fn = posterior.log_prior
    in_support_fn = posterior.in_support

    def evaluate(state, beta):
        log_lik = jnp.asarray(log_likelihood_fn(state), dtype=state.dtype)
        log_prior = jnp.asarray(log_prior_fn(state), dtype=state.dtype)

        valid = jnp.isfinite(log_lik) & jnp.isfinite(log_prior) & jnp.all(jnp.isfinite(state))
        if in_support_fn is not None:
            valid = valid & jnp.asarray(in_support_fn(state), dtype=bool)

        if temper_prior:
            tempered = beta * (log_lik + log_prior)
        else:
            tempered = beta * log_lik + log_prior

        valid = valid & jnp.isfinite(tempered)
        neg_inf = jnp.array(-jnp.inf, dtype=state.dtype)
        return (
            jnp.where(valid, tempered, neg_inf),
            jnp.where(valid, log_lik, neg_inf),
            jnp.where(valid, log_prior, neg_inf),
        )

    return evaluate


def swap_energy(log_lik, log_prior, temper_prior: bool = False):
    """
    The part of the log density that is multiplied by beta.

    Replica exchange only sees this component: with only the likelihood
    tempered the prior ratio cancels, otherwise the full log posterior is
    tempered and enters the ratio.
    """
    energy = log_lik + log_prior if temper_prior else log_lik
    return jnp.where(jnp.isnan(energy), -jnp.inf, energy)
