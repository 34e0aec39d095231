"""Simulation loop, snapshots and flight log.

Example:
    >>> from kitesim.simulation import KiteSimulation, SimulationResult
    >>>
    >>> sim = KiteSimulation.at_tether_end()
    >>> sim.pilot.thrust = 1
    >>> for _ in range(100):
    ...     sim.update(1.0 / 60.0)
    >>> df = SimulationResult.from_simulation(sim).to_dataframe()
"""

from kitesim.simulation.simulator import (
    TUNABLE_RANGES,
    CostAccumulator,
    FlightController,
    FrameRecord,
    KiteSimulation,
    ManualController,
    PilotConfig,
    PilotInput,
    SimConfig,
    SimulationResult,
)
from kitesim.simulation.snapshot import (
    decode_object,
    encode_quaternion,
    encode_vector,
    export_snapshot,
    import_snapshot,
    snapshot_from_json,
    snapshot_to_json,
)

__all__ = [
    # Loop
    "KiteSimulation",
    "SimConfig",
    "FlightController",
    "ManualController",
    "TUNABLE_RANGES",
    # Pilot
    "PilotInput",
    "PilotConfig",
    # Cost and telemetry
    "CostAccumulator",
    "FrameRecord",
    "SimulationResult",
    # Snapshots
    "export_snapshot",
    "import_snapshot",
    "snapshot_to_json",
    "snapshot_from_json",
    "decode_object",
    "encode_vector",
    "encode_quaternion",
]
