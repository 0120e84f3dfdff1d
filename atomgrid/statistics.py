"""
Population statistics.

Totals are recomputed from the particle records on demand (O(N)), so they
always agree with the current composition of every particle.
"""

from typing import Iterable

from .particle import Particle
from .data_types import Statistics


class StatisticsReporter:
    """Aggregates totals over particles and formats them for the console"""

    @staticmethod
    def compute(particles: Iterable[Particle]) -> Statistics:
        """
        Sum composition, charge and mass over particles.

        Mass is summed in the iteration order given (ascending id from the
        EntityStore) so repeated calls agree bit for bit.
        """
        atoms = 0
        protons = 0
        neutrons = 0
        electrons = 0
        mass = 0.0

        for particle in particles:
            atoms += 1
            protons += particle.protons
            neutrons += particle.neutrons
            electrons += particle.electrons
            mass += particle.mass

        return Statistics(
            total_atoms=atoms,
            total_protons=protons,
            total_neutrons=neutrons,
            total_electrons=electrons,
            total_charge=protons - electrons,
            total_mass=mass,
        )

    @staticmethod
    def format(stats: Statistics, title: str = "Statistics") -> str:
        return "\n".join([
            f"{title}:",
            f"  Total atoms: {stats.total_atoms}",
            f"  Total protons: {stats.total_protons}",
            f"  Total neutrons: {stats.total_neutrons}",
            f"  Total electrons: {stats.total_electrons}",
            f"  Total charge: {stats.total_charge} e",
            f"  Total mass: {stats.total_mass:.6e} kg",
        ])

    def print_report(self, stats: Statistics, title: str = "Statistics"):
        """Print statistics block to console"""
        print(self.format(stats, title))
