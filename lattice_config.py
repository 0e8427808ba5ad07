"""
Lattice Family Configuration
============================
Tolerances, trust constants and the demonstration signature table.
Single source of truth for the framework module and the report scripts.

Usage:
    from lattice_config import CONFIG, get
    angle_tol = CONFIG['tolerance']['angle']
    reward = get('verifier.reward')
"""

CONFIG = {

    # =================================================================
    # Classification tolerances (two independent axes)
    # =================================================================
    'tolerance': {
        'length': 1e-4,         # edge-length equality, cosine relations
        'angle': 15.0,          # degrees: angle equality, 90°/120° checks
    },

    # =================================================================
    # Inverse generation
    # =================================================================
    'generator': {
        'psd_floor': -1e-9,     # Cholesky residual below this is impossible
    },

    # =================================================================
    # Trust state machine
    # =================================================================
    'verifier': {
        'initial_trust': 0.5,
        'reward': 0.2,
        'penalty': 0.18,
        'phase_threshold': 0.7,
        'emergent_threshold': 0.5,
        'phase_lock_angles': (72.0, 90.0, 104.0, 120.0),
        'zero_snap': 0.01,
    },

    # =================================================================
    # Known actor signatures (demonstration content)
    # =================================================================
    'signatures': {
        'default': {
            'PlayerA': ('Decagonal', 'Cubic orthogonal', 'Hexagonal tetragonal'),
            'PlayerB': ('Hypercubic', 'Decagonal', 'Ditetragonal diclinic'),
        },
        'unknown_actor': 'Unknown Actor',
    },
}


def get(path: str, default=None):
    """
    Get a config value by dot-separated path.

    Usage:
        get('tolerance.angle')           → 15.0
        get('verifier.phase_lock_angles') → (72.0, 90.0, 104.0, 120.0)
    """
    keys = path.split('.')
    val = CONFIG
    for key in keys:
        if isinstance(val, dict) and key in val:
            val = val[key]
        else:
            return default
    return val
