"""
Proposal settings configuration.

This module defines the canonical ordering of proposal tuning settings and
provides a helper to build the settings array from a user dict.

Settings are stored in a numpy array of shape (MAX_SETTINGS,) that every chain
receives read-only. Proposal functions and the chain's adaptation step access
settings by position using the SettingSlot enum.

To add a new setting:
1. Add it to SettingSlot enum
2. Add default value to SETTING_DEFAULTS
3. Use it in your proposal: settings[SettingSlot.NEW_SETTING]
4. Specify in the config: proposal_settings={'new_setting': value}
"""

from enum import IntEnum
import numpy as np


class SettingSlot(IntEnum):
    """
    Canonical slot indices for proposal settings.

    These map setting names to positions in the settings array.
    """
    COV_MULT = 0            # Multiplier on the proposal variance (all proposals)
    TARGET_ACCEPT_LOW = 1   # Lower edge of the acceptance window used during adaptation
    TARGET_ACCEPT_HIGH = 2  # Upper edge of the acceptance window used during adaptation
    ADAPT_EVERY = 3         # Iterations between scale adaptations (0 = never adapt)
    ADAPT_FACTOR = 4        # Multiplicative step applied to the scale when outside the window
    IDENTITY_PROB = 5       # ADAPTIVE_COVARIANCE: probability of using the identity proposal
    COV_NUGGET = 6          # Diagonal regularization added before Cholesky factorization


# Default values for each setting
SETTING_DEFAULTS = {
    SettingSlot.COV_MULT: 1.0,
    SettingSlot.TARGET_ACCEPT_LOW: 0.20,
    SettingSlot.TARGET_ACCEPT_HIGH: 0.40,
    SettingSlot.ADAPT_EVERY: 100.0,   # Stored as float so the array stays homogeneous
    SettingSlot.ADAPT_FACTOR: 1.2,
    SettingSlot.IDENTITY_PROB: 0.05,
    SettingSlot.COV_NUGGET: 1e-10,
}

# Total number of settings (determines array width)
MAX_SETTINGS = len(SettingSlot)


def build_settings_array(settings=None):
    """
    Convert a settings dict into a numpy array indexed by SettingSlot.

    Args:
        settings: Optional dict of lowercase setting names to values,
                  e.g. {'cov_mult': 0.5, 'adapt_every': 50}

    Returns:
        Read-only float64 array of shape (MAX_SETTINGS,)

    Raises:
        ValueError: If a key does not name a SettingSlot
    """
    array = np.zeros(MAX_SETTINGS, dtype=np.float64)
    for slot, default in SETTING_DEFAULTS.items():
        array[slot] = default

    for key, value in (settings or {}).items():
        name = key.upper()
        if name not in SettingSlot.__members__:
            valid = [s.name.lower() for s in SettingSlot]
            raise ValueError(f"Unknown proposal setting '{key}'. Valid settings: {valid}")
        array[SettingSlot[name]] = float(value)

    array.flags.writeable = False
    return array
