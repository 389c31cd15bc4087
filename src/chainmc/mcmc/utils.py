from ..proposals import parse_proposal_type


def clean_config(mcmc_config):
    """
    Cleans the config dict and sets defaults.
    All config keys use lowercase with underscores.
    """
    mcmc_config = {str(k).lower(): v for k, v in mcmc_config.items()}

    # Define Defaults and retrieve values from dictionary (all lowercase)
    mcmc_config.setdefault('use_double', True)
    mcmc_config.setdefault('rng_seed', 12345)
    mcmc_config.setdefault('warmup_iterations', 0)
    mcmc_config.setdefault('thinning_interval', 1)
    mcmc_config.setdefault('proposal_type', 'random_walk')
    mcmc_config.setdefault('parallel', True)
    mcmc_config.setdefault('progress_rate', 0.01)

    settings = mcmc_config.get('proposal_settings') or {}
    mcmc_config['proposal_settings'] = {str(k).lower(): v for k, v in settings.items()}
    mcmc_config['proposal_type'] = parse_proposal_type(mcmc_config['proposal_type'])

    return mcmc_config
