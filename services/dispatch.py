"""Representative-year energy dispatch for a household PV + battery system.

One average day (annual load and generation divided by 365) is replayed for
every day of the year. Battery state of charge carries over between days so
an imbalanced day/night split accumulates or drains storage over the year.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from services.billing import BillingPlan, annual_cost_for_load

DAYS_PER_YEAR = 365
DEFAULT_PV_YIELD_PER_KW_DAY = 3.1


@dataclass(frozen=True)
class DispatchAssumptions:
    pv_yield_per_kw_year: float = DEFAULT_PV_YIELD_PER_KW_DAY * DAYS_PER_YEAR
    round_trip_efficiency: float = 0.90
    usable_fraction: float = 1.0


@dataclass(frozen=True)
class SystemConfiguration:
    """One candidate design point.

    ``key`` rounds PV to 0.01 kW and battery to 0.1 kWh; it is the identity
    used for de-duplication everywhere.
    """

    pv_kw: float
    battery_kwh: float

    @property
    def key(self) -> Tuple[float, float]:
        return configuration_key(self.pv_kw, self.battery_kwh)

    @property
    def has_battery(self) -> bool:
        return self.key[1] > 0


def configuration_key(pv_kw: float, battery_kwh: float) -> Tuple[float, float]:
    return round(float(pv_kw), 2), round(float(battery_kwh), 1)


@dataclass
class DailyLog:
    pv_kwh: np.ndarray
    pv_to_load_kwh: np.ndarray
    charge_input_kwh: np.ndarray
    stored_kwh: np.ndarray
    discharge_kwh: np.ndarray
    sold_kwh: np.ndarray
    grid_kwh: np.ndarray
    soc_kwh: np.ndarray


@dataclass(frozen=True)
class SimulationResult:
    annual_load_kwh: float
    generation_kwh: float
    self_consumed_kwh: float
    sold_kwh: float
    charged_kwh: float
    discharged_kwh: float
    grid_import_kwh: float
    grid_import_day_kwh: float
    grid_import_night_kwh: float
    end_soc_kwh: float
    pre_install_cost: float
    post_install_cost: float
    annual_savings: float
    daily_log: Optional[DailyLog] = None


def one_way_efficiency(round_trip_efficiency: float) -> float:
    """Return sqrt(round-trip), bounded to (0.05, 1.0]."""

    bounded = max(0.05, min(float(round_trip_efficiency), 1.0))
    return math.sqrt(bounded)


def simulate_year(
    annual_load_kwh: float,
    day_fraction: float,
    pv_kw: float,
    battery_kwh: float,
    plan: BillingPlan,
    assumptions: DispatchAssumptions = DispatchAssumptions(),
    need_logs: bool = False,
) -> SimulationResult:
    """Simulate 365 identical days and bill the residual grid import.

    Daytime PV serves the daytime load first, then charges the battery (the
    battery receives ``input * eta``), then is exported. At night the battery
    delivers up to ``soc * eta`` to the night load and the grid covers the rest.
    """

    annual_load_kwh = max(float(annual_load_kwh), 0.0)
    day_fraction = min(max(float(day_fraction), 0.0), 1.0)
    daily_load = annual_load_kwh / DAYS_PER_YEAR
    day_load = daily_load * day_fraction
    night_load = daily_load - day_load
    daily_pv = max(float(pv_kw), 0.0) * assumptions.pv_yield_per_kw_year / DAYS_PER_YEAR

    usable_capacity = max(float(battery_kwh), 0.0) * assumptions.usable_fraction
    eta = one_way_efficiency(assumptions.round_trip_efficiency)

    logs = None
    if need_logs:
        logs = {name: np.zeros(DAYS_PER_YEAR) for name in DailyLog.__dataclass_fields__}

    soc = 0.0
    total_self = 0.0
    total_sold = 0.0
    total_charge_input = 0.0
    total_discharge = 0.0

    for day in range(DAYS_PER_YEAR):
        pv_to_load = min(daily_pv, day_load)
        surplus = daily_pv - pv_to_load

        charge_input = 0.0
        if usable_capacity > 0 and surplus > 0:
            headroom = max(usable_capacity - soc, 0.0)
            charge_input = min(surplus, headroom / eta)
            soc = min(soc + charge_input * eta, usable_capacity)
        sold = surplus - charge_input

        discharge = 0.0
        if soc > 0 and night_load > 0:
            discharge = min(night_load, soc * eta)
            soc = max(soc - discharge / eta, 0.0)
        grid = (day_load - pv_to_load) + (night_load - discharge)

        total_self += pv_to_load + discharge
        total_sold += sold
        total_charge_input += charge_input
        total_discharge += discharge

        if logs is not None:
            logs["pv_kwh"][day] = daily_pv
            logs["pv_to_load_kwh"][day] = pv_to_load
            logs["charge_input_kwh"][day] = charge_input
            logs["stored_kwh"][day] = charge_input * eta
            logs["discharge_kwh"][day] = discharge
            logs["sold_kwh"][day] = sold
            logs["grid_kwh"][day] = grid
            logs["soc_kwh"][day] = soc

    generation = daily_pv * DAYS_PER_YEAR
    residual = max(annual_load_kwh - total_self, 0.0)
    # Residual import is billed with the same day/night split as the input load.
    residual_day = residual * day_fraction
    residual_night = residual - residual_day

    pre_cost = annual_cost_for_load(plan, annual_load_kwh, day_fraction)
    post_cost = annual_cost_for_load(plan, residual, day_fraction)

    return SimulationResult(
        annual_load_kwh=annual_load_kwh,
        generation_kwh=generation,
        self_consumed_kwh=total_self,
        sold_kwh=total_sold,
        charged_kwh=total_charge_input,
        discharged_kwh=total_discharge,
        grid_import_kwh=residual,
        grid_import_day_kwh=residual_day,
        grid_import_night_kwh=residual_night,
        end_soc_kwh=soc,
        pre_install_cost=pre_cost,
        post_install_cost=post_cost,
        annual_savings=pre_cost - post_cost,
        daily_log=DailyLog(**logs) if logs is not None else None,
    )
