"""
Central configuration constants for the atomic grid simulation.

Defines physical constants, default values, thresholds, and tuning
parameters used across multiple modules.
"""

# ============================================================================
# Physical Constants (SI)
# ============================================================================

COULOMB_CONSTANT = 8.9875517923e9      # k_e, N*m^2/C^2
ELEMENTARY_CHARGE = 1.602176634e-19    # e, C
GRAVITATIONAL_CONSTANT = 6.67430e-11   # G, N*m^2/kg^2

PROTON_MASS = 1.67262192369e-27    # kg
NEUTRON_MASS = 1.67492749804e-27   # kg
ELECTRON_MASS = 9.1093837015e-31   # kg

# Radius scale: radius = RADIUS_SCALE * (protons + neutrons)^(1/3)
RADIUS_SCALE = 0.1


# ============================================================================
# Numerical Guards
# ============================================================================

# Below this separation pairwise forces are zero (avoids 1/d^2 singularity)
FORCE_EPSILON = 1e-10

# Half-width used when a range query is issued with radius 0
QUERY_EPSILON = 1e-9


# ============================================================================
# Force Model Defaults
# ============================================================================

# Lennard-Jones well depth
LJ_EPSILON_DEFAULT = 1.0e-3

# Lennard-Jones cutoff: applied only when d < LJ_CUTOFF_FACTOR * (r_a + r_b)
LJ_CUTOFF_FACTOR = 2.0

# Constant inward push for particles outside the domain (N)
BOUNDARY_FORCE_DEFAULT = 1.0e-25

# Velocity magnitude clamp after integration (None = disabled)
MAX_SPEED_DEFAULT = 100.0


# ============================================================================
# Spatial Hash Configuration
# ============================================================================

# Interaction radius for force and reaction neighbor queries
NEIGHBOR_RADIUS_DEFAULT = 5.0

# cell_size = CELL_SIZE_FACTOR * neighbor_radius
CELL_SIZE_FACTOR = 1.5


# ============================================================================
# Reaction Configuration
# ============================================================================

FUSION_PROBABILITY_DEFAULT = 0.01
TRANSFER_PROBABILITY_DEFAULT = 0.05

# Reactions trigger when d < CONTACT_FACTOR * (r_a + r_b)
CONTACT_FACTOR = 0.5

# Energy release approximation after fusion
FUSION_RADIUS_DEFAULT = 5.0      # particles inside this radius are pushed
FUSION_IMPULSE_DEFAULT = 2.0     # speed added at the midpoint, falls off linearly
FUSION_HEAT_RELEASE = 1000.0     # kelvin added to the fusion product


# ============================================================================
# Spawning Configuration
# ============================================================================

# Lattice spacing for random atom generation (one candidate site per cell)
SPAWN_SPACING_DEFAULT = 8.0

# Default particle temperature (K)
TEMPERATURE_DEFAULT = 300.0


# ============================================================================
# Rendering Hints
# ============================================================================

# Ion tint strength per unit of charge, capped at ION_TINT_MAX
ION_TINT_PER_CHARGE = 0.15
ION_TINT_MAX = 0.6
ION_POSITIVE_TINT = (1.0, 0.25, 0.2, 1.0)
ION_NEGATIVE_TINT = (0.2, 0.35, 1.0, 1.0)


# ============================================================================
# Performance Configuration
# ============================================================================

# Worker threads for force accumulation (1 = run on the calling thread)
FORCE_WORKERS_DEFAULT = 1

# Tick timing window for rolling average
TICK_TIME_WINDOW = 100  # Number of ticks to average

# Default tick summary interval (print every N ticks)
TICK_SUMMARY_INTERVAL = 100
