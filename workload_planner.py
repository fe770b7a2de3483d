"""
Workload Planning Tool
Reads a project list from Excel, works out how loaded each person is on every
working day of the team calendar, and outputs day/week/month workload tables,
charts and an annotated project export.

Features:
  - Working-day calendar with configurable weekend days and one-off or recurring holidays
  - Daily load per project (required days spread over the working days in its range)
  - "Reported" load mode where the owner's own load estimate overrides the calculation
  - Per-person daily load series (concurrent projects sum, overload above 100% is kept)
  - Day / week (Monday-anchored) / month buckets with contributing-project breakdowns
  - Parent/child project trees with rolled-up schedule summaries for parent rows
"""

import argparse
import io
import math
import os
import re
import sys
import unicodedata
from calendar import isleap, monthrange
from datetime import date, datetime, timedelta

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
import numpy as np
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.formatting.rule import CellIsRule


# ── Constants ────────────────────────────────────────────────────────────────

_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_INPUT = os.path.join(_DIR, "workload_data.xlsx")
DEFAULT_OUTDIR = os.path.join(_DIR, "output")

LOAD_MODES = ("calculated", "reported")
GRANULARITIES = ("day", "week", "month")
PROJECT_TYPES = ["Project", "Launch", "Radar"]

# Parent chains deeper than this are treated as corrupt and cut short.
MAX_HIERARCHY_DEPTH = 64

# weekend_days uses 0=Sunday ... 6=Saturday.
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DEFAULT_HOLIDAYS = (
    {"date": datetime(2025, 1, 1), "reason": "New Year's Day", "recurring": True},
    {"date": datetime(2025, 2, 3), "reason": "Constitution Day", "recurring": True},
    {"date": datetime(2025, 3, 17), "reason": "Benito Juarez's Birthday", "recurring": True},
    {"date": datetime(2025, 5, 1), "reason": "Labour Day", "recurring": True},
    {"date": datetime(2025, 9, 16), "reason": "Independence Day", "recurring": True},
    {"date": datetime(2025, 11, 17), "reason": "Revolution Day", "recurring": True},
    {"date": datetime(2025, 12, 25), "reason": "Christmas Day", "recurring": True},
)

DEFAULT_CONFIG = {
    "hours_per_day": 9,
    "weekend_days": frozenset({0, 6}),
    "holidays": DEFAULT_HOLIDAYS,
    "load_mode": "calculated",
    # Each assignee carries the full project load unless this is switched on.
    "split_shared_load": False,
}

DEFAULT_FILTERS = {
    "persons": [],
    "branches": [],
    "types": [],
    "date_range": None,
    "show_only_active": False,
}

LOAD_COLORS = {
    "none": {"bg": "#F3F3F3", "text": "#9B9B9B"},
    "low": {"bg": "#DBEDDB", "text": "#2D6A2E"},
    "medium": {"bg": "#D3E5EF", "text": "#1A5276"},
    "high": {"bg": "#FFF3D1", "text": "#7D6608"},
    "overload": {"bg": "#FADEC9", "text": "#8B4513"},
    "critical": {"bg": "#FFE2DD", "text": "#B71C1C"},
}

# Upper bound (inclusive) of each load band; anything above the last is critical.
LOAD_THRESHOLDS = [(0.5, "low"), (0.8, "medium"), (1.0, "high"), (1.3, "overload")]

PERSON_COLORS = [
    "#579DFF", "#6EC98D", "#E2945E", "#9F8FEF",
    "#F87171", "#F59E0B", "#06B6D4", "#EC4899",
]

PERSON_HATCHES = {
    0: "",
    1: "//",
    2: "\\\\",
    3: "xx",
}

STYLE = {
    "font_family": "DejaVu Sans",
    "title_size": 18,
    "subtitle_size": 13,
    "label_size": 9.5,
    "tick_size": 8.5,
    "small_size": 7.5,
    "bg_color": "#FAFAFA",
    "panel_bg": "#FFFFFF",
    "text_primary": "#1A1A2E",
    "text_secondary": "#555555",
    "text_muted": "#999999",
    "grid_color": "#E0E0E0",
    "over_capacity_color": "#E53935",
    "capacity_line_color": "#1A1A2E",
    "dpi": 180,
    "fig_width": 20,
}

# Spreadsheet headers (accent/case-insensitive) -> project field.
HEADER_MAP = {
    "id": "id",
    "proyecto": "name",
    "project": "name",
    "nombre": "name",
    "nombre del proyecto": "name",
    "name": "name",
    "sucursal": "branch",
    "sede": "branch",
    "ubicacion": "branch",
    "branch": "branch",
    "inicio": "start_date",
    "fecha inicio": "start_date",
    "fecha de inicio": "start_date",
    "start": "start_date",
    "start date": "start_date",
    "fin": "end_date",
    "fecha fin": "end_date",
    "fecha de fin": "end_date",
    "end": "end_date",
    "end date": "end_date",
    "asignado": "assignees",
    "asignados": "assignees",
    "responsable": "assignees",
    "persona": "assignees",
    "asignado a": "assignees",
    "assignee": "assignees",
    "assignees": "assignees",
    "assigned to": "assignees",
    "dias requeridos": "days_required",
    "dias": "days_required",
    "dias necesarios": "days_required",
    "days": "days_required",
    "days required": "days_required",
    "prioridad": "priority",
    "priority": "priority",
    "tipo": "type",
    "type": "type",
    "bloqueado por": "blocked_by",
    "blocked by": "blocked_by",
    "bloquea a": "blocks_to",
    "blocks to": "blocks_to",
    "blocks": "blocks_to",
    "carga segun responsable": "reported_load",
    "carga responsable": "reported_load",
    "reported load": "reported_load",
    "padre": "parent",
    "proyecto padre": "parent",
    "parent": "parent",
}

TRUTHY_STRINGS = {"yes", "y", "si", "true", "1", "x"}


# ── Errors ───────────────────────────────────────────────────────────────────

class InvalidConfiguration(ValueError):
    """Configuration values that make the workload maths meaningless."""


class CyclicHierarchy(ValueError):
    """A parent_id chain loops back on itself."""

    def __init__(self, project_ids):
        self.project_ids = list(project_ids)
        super().__init__(
            f"Cyclic parent chain through project(s): {', '.join(str(i) for i in self.project_ids)}")


# ── Style Helpers ────────────────────────────────────────────────────────────

def apply_style():
    """Configure matplotlib rcParams for consistent styling."""
    plt.rcParams.update({
        "font.family": STYLE["font_family"],
        "font.size": STYLE["label_size"],
        "axes.facecolor": STYLE["panel_bg"],
        "figure.facecolor": STYLE["bg_color"],
        "axes.edgecolor": STYLE["grid_color"],
        "axes.linewidth": 0.8,
        "axes.grid": False,
        "xtick.color": STYLE["text_secondary"],
        "ytick.color": STYLE["text_secondary"],
        "text.color": STYLE["text_primary"],
    })


def style_axes(ax, title="", ylabel="", show_grid_y=False):
    """Apply consistent axis styling to any subplot."""
    if title:
        ax.set_title(title, fontsize=STYLE["subtitle_size"], fontweight="bold",
                     color=STYLE["text_primary"], pad=12, loc="left")
    if ylabel:
        ax.set_ylabel(ylabel, fontsize=STYLE["label_size"], color=STYLE["text_secondary"])
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.spines["left"].set_linewidth(0.6)
    ax.spines["bottom"].set_linewidth(0.6)
    if show_grid_y:
        ax.grid(axis="y", alpha=0.15, linewidth=0.5, color=STYLE["grid_color"])
    ax.set_axisbelow(True)


def add_header_footer(fig, title, subtitle=""):
    """Add a title block and generation timestamp footer."""
    fig.suptitle(title, fontsize=STYLE["title_size"], fontweight="bold",
                 color=STYLE["text_primary"], y=0.98, x=0.04, ha="left")
    if subtitle:
        fig.text(0.04, 0.948, subtitle, fontsize=STYLE["small_size"] + 1,
                 color=STYLE["text_muted"], ha="left")
    fig.text(0.98, 0.008, f"Generated {datetime.now().strftime('%d %b %Y %H:%M')}",
             ha="right", fontsize=STYLE["small_size"], color=STYLE["text_muted"])
    fig.text(0.04, 0.008, "Workload Planning Tool",
             ha="left", fontsize=STYLE["small_size"], color=STYLE["text_muted"])


# ── Value Helpers ────────────────────────────────────────────────────────────

def norm_date(d):
    """Normalise to midnight datetime for safe set membership checks."""
    if isinstance(d, pd.Timestamp):
        d = d.to_pydatetime()
    if not isinstance(d, (datetime, date)):
        raise TypeError(f"norm_date expected a date, got {type(d).__name__}: {d!r}")
    return datetime(d.year, d.month, d.day)


def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or (isinstance(val, float) and math.isnan(val)):
        return ""
    if val is pd.NaT:
        return ""
    return str(val).strip()


def _is_blank(val):
    if val is None:
        return True
    if isinstance(val, str):
        return not val.strip()
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


class _TeeWriter:
    """Write to two streams simultaneously (for summary.txt capture)."""
    def __init__(self, a, b):
        self.a, self.b = a, b
    def write(self, data):
        self.a.write(data)
        self.b.write(data)
    def flush(self):
        self.a.flush()
        self.b.flush()


def parse_date(val, context=""):
    """Parse date from an Excel cell: datetime, date, Timestamp or string."""
    ctx = f" ({context})" if context else ""
    if _is_blank(val):
        raise ValueError(f"Date is blank{ctx}")
    if isinstance(val, (datetime, date, pd.Timestamp)):
        return norm_date(val)
    if isinstance(val, str):
        val = val.strip()
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%d/%m/%y", "%d-%m-%y"):
            try:
                return norm_date(datetime.strptime(val, fmt))
            except ValueError:
                pass
        raise ValueError(f"Cannot parse date{ctx}: {val!r}. Expected YYYY-MM-DD or DD/MM/YYYY")
    raise ValueError(f"Cannot parse date{ctx}: {val!r}")


def parse_optional_date(val, context=""):
    """Like parse_date, but a blank cell means "no date" rather than an error."""
    if _is_blank(val):
        return None
    return parse_date(val, context)


# ── Calendar ─────────────────────────────────────────────────────────────────

def day_of_week(d):
    """Day-of-week in the weekend_days numbering (0=Sunday ... 6=Saturday)."""
    return (d.weekday() + 1) % 7


def _recurring_anchor(holiday_date, year):
    """(month, day) a recurring holiday falls on in the given year."""
    # 29 Feb holidays are observed on 28 Feb in common years.
    if holiday_date.month == 2 and holiday_date.day == 29 and not isleap(year):
        return 2, 28
    return holiday_date.month, holiday_date.day


def is_holiday(d, holidays):
    """Check a date against one-off (exact date) and recurring (month/day) holidays."""
    if not holidays:
        return False
    d = norm_date(d)
    for hol in holidays:
        hol_date = norm_date(hol["date"])
        if hol.get("recurring"):
            if (d.month, d.day) == _recurring_anchor(hol_date, d.year):
                return True
        elif d == hol_date:
            return True
    return False


def is_working_day(d, config):
    """Check if a date is a working day (not a weekend day, not a holiday)."""
    if day_of_week(d) in config["weekend_days"]:
        return False
    if is_holiday(d, config.get("holidays")):
        return False
    return True


def enumerate_working_days(start, end, config):
    """Working days between start and end (inclusive), ascending."""
    if start is None or end is None:
        return []
    d, end_d = norm_date(start), norm_date(end)
    days = []
    while d <= end_d:
        if is_working_day(d, config):
            days.append(d)
        d += timedelta(days=1)
    return days


def count_working_days(start, end, config):
    """Count working days between start and end (inclusive); 0 for inverted ranges."""
    return len(enumerate_working_days(start, end, config))


# ── Configuration ────────────────────────────────────────────────────────────

def validate_config(config):
    """Raise InvalidConfiguration if config cannot drive a workload computation."""
    hours = config.get("hours_per_day")
    if (isinstance(hours, bool) or not isinstance(hours, (int, float, np.number))
            or math.isnan(hours) or hours <= 0):
        raise InvalidConfiguration(f"hours_per_day must be a positive number, got {hours!r}")

    weekend_days = config.get("weekend_days")
    if weekend_days is None:
        raise InvalidConfiguration("weekend_days is missing")
    for wd in weekend_days:
        if isinstance(wd, bool) or not isinstance(wd, (int, np.integer)) or not 0 <= wd <= 6:
            raise InvalidConfiguration(
                f"weekend_days must hold day numbers 0 (Sunday) to 6 (Saturday), got {wd!r}")

    if config.get("load_mode") not in LOAD_MODES:
        raise InvalidConfiguration(
            f"load_mode must be one of {', '.join(LOAD_MODES)}, got {config.get('load_mode')!r}")

    for idx, hol in enumerate(config.get("holidays") or ()):
        if not isinstance(hol, dict) or hol.get("date") is None:
            raise InvalidConfiguration(f"Holiday #{idx + 1} has no date: {hol!r}")
        try:
            norm_date(hol["date"])
        except TypeError as e:
            raise InvalidConfiguration(f"Holiday #{idx + 1}: {e}") from e
    return config


def make_config(**overrides):
    """Build a validated config from DEFAULT_CONFIG plus overrides.

    weekend_days comes back as a frozenset and holidays as a tuple of
    normalised dicts, so a config can be shared across computation passes
    without anyone mutating it underneath.
    """
    unknown = set(overrides) - set(DEFAULT_CONFIG)
    if unknown:
        raise InvalidConfiguration(f"Unknown config key(s): {', '.join(sorted(unknown))}")
    config = dict(DEFAULT_CONFIG)
    config.update(overrides)
    validate_config(config)
    config["weekend_days"] = frozenset(int(wd) for wd in config["weekend_days"])
    config["holidays"] = tuple(
        {
            "date": norm_date(hol["date"]),
            "reason": clean_str(hol.get("reason")),
            "recurring": bool(hol.get("recurring", False)),
        }
        for hol in config["holidays"] or ()
    )
    config["split_shared_load"] = bool(config.get("split_shared_load"))
    return config


# ── Project Fields ───────────────────────────────────────────────────────────

def make_project(**fields):
    """Build a project dict with a default for every field the engine reads."""
    project = {
        "id": None,
        "name": "",
        "branch": "",
        "start_date": None,
        "end_date": None,
        "assignees": [],
        "days_required": 0.0,
        "priority": 1,
        "type": "Project",
        "blocked_by": None,
        "blocks_to": None,
        "reported_load": None,
        "parent_id": None,
        "is_expanded": True,
    }
    project.update(fields)
    for key in ("start_date", "end_date"):
        if _is_blank(project[key]):
            project[key] = None
        else:
            project[key] = norm_date(project[key])
    assignees = []
    for name in project["assignees"] or []:
        name = clean_str(name)
        if name and name not in assignees:
            assignees.append(name)
    project["assignees"] = assignees
    return project


def _calculated_load(project, working_days, days_required):
    if working_days <= 0 or days_required <= 0:
        return 0.0
    return days_required / working_days


def _reported_load(project, working_days, days_required):
    if working_days <= 0:
        return 0.0
    reported = project.get("reported_load")
    if _is_blank(reported):
        return _calculated_load(project, working_days, days_required)
    return float(reported)


LOAD_STRATEGIES = {
    "calculated": _calculated_load,
    "reported": _reported_load,
}


def compute_fields(project, config):
    """Return a copy of project with assigned_days, balance_days, daily_load and total_hours.

    A project missing either date gets zeros across the board: it has no
    schedule to spread its effort over. A project whose range holds no
    working days keeps a zero load but a negative balance, which is how an
    infeasible schedule shows up.
    """
    validate_config(config)
    start = project.get("start_date")
    end = project.get("end_date")
    days_required = float(project.get("days_required") or 0)

    assigned_days = 0
    balance_days = 0.0
    daily_load = 0.0
    total_hours = 0.0

    if start is not None and end is not None:
        assigned_days = count_working_days(start, end, config)
        balance_days = assigned_days - days_required
        strategy = LOAD_STRATEGIES[config["load_mode"]]
        daily_load = strategy(project, assigned_days, days_required)
        total_hours = days_required * config["hours_per_day"]

    result = dict(project)
    result.update({
        "assigned_days": assigned_days,
        "balance_days": balance_days,
        "daily_load": daily_load,
        "total_hours": total_hours,
    })
    return result


def compute_all(projects, config):
    """Validate config once, then recompute derived fields for every project."""
    validate_config(config)
    return [compute_fields(p, config) for p in projects]


def is_infeasible(project):
    """A dated project that needs effort but has no working days to do it in."""
    return (project.get("start_date") is not None and project.get("end_date") is not None
            and project.get("assigned_days", 0) == 0
            and float(project.get("days_required") or 0) > 0)


# ── Workload Series ──────────────────────────────────────────────────────────

def get_persons(projects):
    """Every assignee across the projects, de-duplicated and sorted."""
    persons = set()
    for p in projects:
        for name in p.get("assignees") or []:
            name = clean_str(name)
            if name:
                persons.add(name)
    return sorted(persons)


def get_branches(projects):
    return sorted({p["branch"] for p in projects if p.get("branch")})


def get_active_projects(projects):
    """Projects that can put load on someone: both dates and at least one assignee."""
    return [p for p in projects
            if p.get("start_date") is not None and p.get("end_date") is not None
            and p.get("assignees")]


def _project_daily_load(project, config):
    load = project.get("daily_load")
    if load is None:
        load = compute_fields(project, config)["daily_load"]
    return load


def build_person_series(projects, person, config):
    """Daily load series for one person: one point per working day of their active projects.

    Every assignee of a project receives its full daily_load (how loaded is
    this person), unless config["split_shared_load"] divides it by the
    number of assignees. Totals above 1.0 are overcommitment and are kept.
    """
    totals = {}
    contributions = {}
    for project in projects:
        assignees = project.get("assignees") or []
        if person not in assignees:
            continue
        if project.get("start_date") is None or project.get("end_date") is None:
            continue
        load = _project_daily_load(project, config)
        if config.get("split_shared_load") and len(set(assignees)) > 1:
            load = load / len(set(assignees))
        for day in enumerate_working_days(project["start_date"], project["end_date"], config):
            totals[day] = totals.get(day, 0.0) + load
            if load > 0:
                contributions.setdefault(day, []).append({
                    "project_id": project.get("id"),
                    "project_name": project.get("name", ""),
                    "daily_load": load,
                })

    return [{"date": day, "total_load": totals[day], "projects": contributions.get(day, [])}
            for day in sorted(totals)]


def build_all_series(projects, config):
    """Map every assignee to their daily load series."""
    validate_config(config)
    active = get_active_projects(projects)
    return {person: build_person_series(active, person, config)
            for person in get_persons(active)}


def apply_filters(projects, filters):
    """Narrow the project list by person, branch, type, activity and date window."""
    filters = {**DEFAULT_FILTERS, **(filters or {})}
    persons = set(filters["persons"])
    branches = set(filters["branches"])
    types = set(filters["types"])
    result = []
    for p in projects:
        assignees = p.get("assignees") or []
        if persons and not persons.intersection(assignees):
            continue
        if branches and p.get("branch") not in branches:
            continue
        if types and p.get("type") not in types:
            continue
        if filters["show_only_active"] and p.get("type") == "Radar":
            continue
        window = filters["date_range"]
        if window and p.get("start_date") is not None and p.get("end_date") is not None:
            w_start, w_end = norm_date(window[0]), norm_date(window[1])
            if p["end_date"] < w_start or p["start_date"] > w_end:
                continue
        result.append(p)
    return result


def get_date_range(projects):
    """(earliest date, latest date) over all project start/end dates, or None."""
    dates = []
    for p in projects:
        if p.get("start_date") is not None:
            dates.append(norm_date(p["start_date"]))
        if p.get("end_date") is not None:
            dates.append(norm_date(p["end_date"]))
    if not dates:
        return None
    return min(dates), max(dates)


def load_band(load):
    """Name of the LOAD_COLORS band a load fraction falls in."""
    if load <= 0:
        return "none"
    for upper, band in LOAD_THRESHOLDS:
        if load <= upper:
            return band
    return "critical"


def get_person_summary(person, projects, series, today=None):
    """Headline numbers for a person card: current, average and peak load plus what's next."""
    today = norm_date(today or datetime.now())
    person_projects = [p for p in projects if person in (p.get("assignees") or [])]
    dated = [p for p in person_projects
             if p.get("start_date") is not None and p.get("end_date") is not None]

    current_load = 0.0
    for point in series:
        if norm_date(point["date"]) == today:
            current_load = point["total_load"]
            break

    loads = [point["total_load"] for point in series]
    avg_load = float(np.mean(loads)) if loads else 0.0

    peak_load = 0.0
    peak_date = None
    for point in series:
        if point["total_load"] > peak_load:
            peak_load = point["total_load"]
            peak_date = point["date"]

    upcoming = sorted((p for p in dated if p["start_date"] >= today),
                      key=lambda p: p["start_date"])[:3]

    return {
        "person": person,
        "total_projects": len(person_projects),
        "active_projects": len(dated),
        "current_load": current_load,
        "avg_load": avg_load,
        "peak_load": peak_load,
        "peak_date": peak_date,
        "upcoming_projects": upcoming,
    }


# ── Period Buckets ───────────────────────────────────────────────────────────

def get_week_start(d):
    """Get the Monday of the week containing the given date."""
    d = norm_date(d)
    return d - timedelta(days=d.weekday())


def get_week_ranges(start, end):
    """Monday-anchored weeks covering [start, end], clipped at both ends."""
    start, end = norm_date(start), norm_date(end)
    ranges = []
    current = get_week_start(start)
    while current <= end:
        week_end = current + timedelta(days=6)
        ranges.append((max(current, start), min(week_end, end)))
        current = week_end + timedelta(days=1)
    return ranges


def get_month_ranges(start, end):
    """Calendar months covering [start, end], clipped at both ends."""
    start, end = norm_date(start), norm_date(end)
    ranges = []
    current = datetime(start.year, start.month, 1)
    while current <= end:
        _, num_days = monthrange(current.year, current.month)
        month_end = datetime(current.year, current.month, num_days)
        ranges.append((max(current, start), min(month_end, end)))
        current = month_end + timedelta(days=1)
    return ranges


def _make_bucket(start, end, label, working_days, by_date):
    loads = [by_date[d]["total_load"] if d in by_date else 0.0 for d in working_days]
    avg_load = float(np.mean(loads)) if loads else 0.0

    contributions = {}
    for d in working_days:
        point = by_date.get(d)
        if point is None:
            continue
        for contrib in point.get("projects") or []:
            contributions.setdefault(contrib["project_id"], dict(contrib))

    projects = sorted(contributions.values(),
                      key=lambda c: (-c["daily_load"], c["project_name"], str(c["project_id"])))
    return {"start": start, "end": end, "label": label, "avg_load": avg_load, "projects": projects}


def aggregate_by_period(series, granularity, date_range, config):
    """Compress a daily series into day, week or month buckets over date_range.

    Week and month buckets tile the range exactly; their avg_load is the mean
    daily total over the working days inside the bucket, counting days with
    no series point as zero. Day granularity yields one bucket per working
    day only. A bucket lists each contributing project once, at its per-day
    rate, highest load first.
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"granularity must be one of {', '.join(GRANULARITIES)}, got {granularity!r}")
    validate_config(config)
    start, end = norm_date(date_range[0]), norm_date(date_range[1])
    if start > end:
        return []

    by_date = {norm_date(point["date"]): point for point in series}

    if granularity == "day":
        return [_make_bucket(d, d, d.strftime("%d %b"), [d], by_date)
                for d in enumerate_working_days(start, end, config)]

    if granularity == "week":
        ranges = get_week_ranges(start, end)
        label_fmt = "%d %b"
    else:
        ranges = get_month_ranges(start, end)
        label_fmt = "%b %Y"

    return [_make_bucket(r_start, r_end, r_start.strftime(label_fmt),
                         enumerate_working_days(r_start, r_end, config), by_date)
            for r_start, r_end in ranges]


def buckets_to_frame(buckets_by_person):
    """Flatten {person: buckets} into a DataFrame for printing or export."""
    rows = []
    for person, buckets in buckets_by_person.items():
        for b in buckets:
            rows.append({
                "person": person,
                "start": b["start"],
                "end": b["end"],
                "label": b["label"],
                "avg_load": b["avg_load"],
                "band": load_band(b["avg_load"]),
                "projects": ", ".join(c["project_name"] for c in b["projects"]),
            })
    columns = ["person", "start", "end", "label", "avg_load", "band", "projects"]
    return pd.DataFrame(rows, columns=columns)


# ── Hierarchy ────────────────────────────────────────────────────────────────

def _index_by_id(projects):
    by_id = {}
    for p in projects:
        by_id.setdefault(p.get("id"), p)
    return by_id


def _children_index(projects):
    """parent_id -> children, in input order."""
    index = {}
    for p in projects:
        parent_id = p.get("parent_id")
        if parent_id is not None:
            index.setdefault(parent_id, []).append(p)
    return index


def get_children(project_id, projects):
    return [p for p in projects if p.get("parent_id") == project_id]


def is_parent(project_id, projects):
    """True if any project names project_id as its parent."""
    return any(p.get("parent_id") == project_id for p in projects)


def get_leaf_projects(projects):
    """Projects nobody points at as a parent."""
    parent_ids = {p.get("parent_id") for p in projects if p.get("parent_id") is not None}
    return [p for p in projects if p.get("id") not in parent_ids]


def get_descendants(project_id, projects):
    """Children, grandchildren and so on, depth first; never loops on a cycle."""
    index = _children_index(projects)
    result = []
    seen = {project_id}

    def visit(node_id, depth):
        if depth >= MAX_HIERARCHY_DEPTH:
            return
        for child in index.get(node_id, []):
            if child.get("id") in seen:
                continue
            seen.add(child.get("id"))
            result.append(child)
            visit(child.get("id"), depth + 1)

    visit(project_id, 0)
    return result


def get_ancestors(project_id, projects):
    """Parent, grandparent and so on up to the root."""
    by_id = _index_by_id(projects)
    ancestors = []
    seen = {project_id}
    current = by_id.get(project_id)
    while current is not None and len(ancestors) < MAX_HIERARCHY_DEPTH:
        parent = by_id.get(current.get("parent_id"))
        if parent is None or parent.get("id") in seen:
            break
        seen.add(parent.get("id"))
        ancestors.append(parent)
        current = parent
    return ancestors


def calculate_hierarchy_level(project_id, projects):
    """Depth of a project in its tree; roots are level 0."""
    return len(get_ancestors(project_id, projects))


def calculate_indent_levels(projects):
    return {p.get("id"): calculate_hierarchy_level(p.get("id"), projects) for p in projects}


def get_root_projects(projects):
    """Projects with no parent, or whose parent is not in the list."""
    ids = {p.get("id") for p in projects}
    return [p for p in projects if p.get("parent_id") is None or p.get("parent_id") not in ids]


def get_siblings(project_id, projects):
    by_id = _index_by_id(projects)
    project = by_id.get(project_id)
    if project is None:
        return []
    return [p for p in projects
            if p.get("parent_id") == project.get("parent_id") and p.get("id") != project_id]


def _chain_reaches(target_id, start_id, parents, by_id):
    """Walk parent links from start_id; True if the walk arrives at target_id."""
    seen = set()
    current = start_id
    depth = 0
    while current is not None and current not in seen and depth <= MAX_HIERARCHY_DEPTH:
        if current == target_id:
            return True
        seen.add(current)
        if current in parents:
            current = parents[current]
        else:
            current = by_id[current].get("parent_id") if current in by_id else None
        depth += 1
    return False


def find_cycles(projects):
    """Ids of projects whose parent chain leads back to themselves, in input order."""
    by_id = _index_by_id(projects)
    return [p.get("id") for p in projects
            if p.get("parent_id") is not None
            and _chain_reaches(p.get("id"), p.get("parent_id"), {}, by_id)]


def _effective_parents(projects):
    """Resolve each project's parent, cutting cycles and dangling references to roots.

    Only the first row carrying a given id takes part; later duplicates are
    left out of the tree.
    """
    by_id = _index_by_id(projects)
    parents = {}
    for p in projects:
        project_id = p.get("id")
        if project_id in parents:
            continue
        parent_id = p.get("parent_id")
        if parent_id not in by_id:
            parent_id = None
        elif _chain_reaches(project_id, parent_id, parents, by_id):
            parent_id = None
        parents[project_id] = parent_id
    return parents


def build_hierarchy(projects, strict=False):
    """Nest the flat project list into trees; returns the root nodes.

    Siblings keep their relative input order. A project whose parent is
    missing becomes a root. On a parent cycle the first project of the cycle
    (in input order) is promoted to root, or CyclicHierarchy is raised when
    strict is set.
    """
    if strict:
        cycles = find_cycles(projects)
        if cycles:
            raise CyclicHierarchy(cycles)

    parents = _effective_parents(projects)
    nodes = {}
    for p in projects:
        nodes.setdefault(p.get("id"), {"project": p, "children": []})

    roots = []
    for p in projects:
        node = nodes[p.get("id")]
        if node["project"] is not p:
            continue  # duplicate id
        parent_id = parents[p.get("id")]
        if parent_id is None:
            roots.append(node)
        else:
            nodes[parent_id]["children"].append(node)
    return roots


def flatten_hierarchy(roots):
    """Pre-order walk of the trees back into a flat project list."""
    result = []

    def traverse(node):
        result.append(node["project"])
        for child in node["children"]:
            traverse(child)

    for root in roots:
        traverse(root)
    return result


def validate_no_circles(project_id, new_parent_id, projects):
    """False if making new_parent_id the parent of project_id would close a loop."""
    if new_parent_id is None:
        return True
    if project_id == new_parent_id:
        return False
    return all(p.get("id") != new_parent_id for p in get_descendants(project_id, projects))


def move_project(project_id, new_parent_id, projects):
    """Return a new project list with project_id reparented under new_parent_id."""
    if not validate_no_circles(project_id, new_parent_id, projects):
        raise CyclicHierarchy([project_id, new_parent_id])
    return [{**p, "parent_id": new_parent_id} if p.get("id") == project_id else p
            for p in projects]


def build_project_path(project_id, projects):
    """"Root/Parent/Project" style path, used to match projects across imports."""
    project = _index_by_id(projects).get(project_id)
    if project is None:
        return ""
    names = [a.get("name", "") for a in reversed(get_ancestors(project_id, projects))]
    return "/".join(names + [project.get("name", "")])


def _round_half_up(x):
    return int(math.floor(x + 0.5))


def _rollup(node_id, children_index, config, visiting, depth):
    starts, ends = [], []
    days_required = 0.0
    weighted_priority = 0.0
    priorities = []
    assignees = set()

    for child in children_index.get(node_id, []):
        child_id = child.get("id")
        if child_id in visiting or depth >= MAX_HIERARCHY_DEPTH:
            continue
        inner = visiting | {child_id}
        if any(c.get("id") not in inner for c in children_index.get(child_id, [])):
            values = _rollup(child_id, children_index, config, inner, depth + 1)
        else:
            values = child

        if values.get("start_date") is not None:
            starts.append(norm_date(values["start_date"]))
        if values.get("end_date") is not None:
            ends.append(norm_date(values["end_date"]))
        days = float(values.get("days_required") or 0)
        priority = values.get("priority") or 1
        days_required += days
        weighted_priority += priority * days
        priorities.append(priority)
        assignees.update(values.get("assignees") or [])

    if days_required > 0:
        priority = _round_half_up(weighted_priority / days_required)
    elif priorities:
        priority = _round_half_up(sum(priorities) / len(priorities))
    else:
        priority = 1

    # The parent is scheduled as a pseudo-project spanning its children.
    pseudo = {
        "start_date": min(starts) if starts else None,
        "end_date": max(ends) if ends else None,
        "days_required": days_required,
        "reported_load": None,
    }
    derived = compute_fields(pseudo, config)
    return {
        "start_date": pseudo["start_date"],
        "end_date": pseudo["end_date"],
        "days_required": days_required,
        "assignees": sorted(assignees),
        "priority": priority,
        "assigned_days": derived["assigned_days"],
        "balance_days": derived["balance_days"],
        "daily_load": derived["daily_load"],
        "total_hours": derived["total_hours"],
    }


def aggregate_from_children(parent_id, projects, config):
    """Rolled-up schedule fields for a parent row; {} when parent_id has no children.

    Start is the earliest and end the latest date over the subtree, with
    nested parents contributing their own rollups rather than their raw rows.
    days_required is the sum over children, and the load fields are then
    computed as if the parent were one project spanning that extent.
    """
    validate_config(config)
    index = _children_index(projects)
    if not index.get(parent_id):
        return {}
    return _rollup(parent_id, index, config, {parent_id}, 0)


def rollup_projects(projects, config):
    """Recompute every project, replacing parent rows with their rollups."""
    index = _children_index(projects)
    result = []
    for p in projects:
        computed = compute_fields(p, config)
        if index.get(p.get("id")):
            computed.update(_rollup(p.get("id"), index, config, {p.get("id")}, 0))
            computed["is_rollup"] = True
        result.append(computed)
    return result


def get_collapsed_summary(project_id, projects, config):
    """What a folded parent row shows: child counts plus the rolled-up schedule."""
    metrics = aggregate_from_children(project_id, projects, config)
    return {
        "child_count": len(get_children(project_id, projects)),
        "descendant_count": len(get_descendants(project_id, projects)),
        "start_date": metrics.get("start_date"),
        "end_date": metrics.get("end_date"),
        "assignees": metrics.get("assignees", []),
        "days_required": metrics.get("days_required", 0),
        "priority": metrics.get("priority", 1),
        "daily_load": metrics.get("daily_load", 0.0),
        "balance_days": metrics.get("balance_days", 0.0),
    }


# ── Data Loading ─────────────────────────────────────────────────────────────

def normalize_header(header):
    """Lower-case, strip accents and collapse whitespace in a column header."""
    text = unicodedata.normalize("NFD", str(header).strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", text)


def parse_assignees(val):
    """Split "Ana/Luis", "Ana, Luis" or "Ana" into unique names."""
    text = clean_str(val)
    if not text:
        return []
    names = []
    for name in re.split(r"\s*[/,]\s*", text):
        name = name.strip()
        if name and name not in names:
            names.append(name)
    return names


def parse_priority(val):
    """Priority 1-5 from a number, a digit string or a row of stars."""
    if _is_blank(val):
        return 1
    if isinstance(val, (int, float, np.number)) and not isinstance(val, bool):
        return max(1, min(5, _round_half_up(float(val))))
    text = clean_str(val)
    stars = len(re.findall("[⭐★☆*]", text))
    if stars:
        return min(5, stars)
    match = re.match(r"^\s*(-?\d+)", text)
    if match:
        return max(1, min(5, int(match.group(1))))
    return 1


def parse_type(val):
    text = normalize_header(clean_str(val))
    if "lanzamiento" in text or "launch" in text:
        return "Launch"
    if "radar" in text:
        return "Radar"
    return "Project"


def parse_percentage(val):
    """Load fraction from 0.4, 40, "40%" or "0.4"; None when blank or unreadable."""
    if _is_blank(val):
        return None
    if isinstance(val, (int, float, np.number)) and not isinstance(val, bool):
        val = float(val)
    else:
        try:
            val = float(clean_str(val).replace("%", "").strip())
        except ValueError:
            return None
    return val / 100 if val > 1 else val


def _clean_id(val):
    if isinstance(val, float) and not math.isnan(val) and val.is_integer():
        return str(int(val))
    return clean_str(val)


def _parse_days(val, row_num):
    if _is_blank(val):
        return 0.0
    try:
        days = float(val)
    except (ValueError, TypeError):
        print(f"  WARNING: Row {row_num}: invalid days required {val!r}, using 0.")
        return 0.0
    if days < 0:
        print(f"  WARNING: Row {row_num}: negative days required ({days:g}), using 0.")
        return 0.0
    return days


def projects_from_frame(df, config):
    """Turn a spreadsheet DataFrame into computed project records.

    Headers are matched through HEADER_MAP. Rows without a name are skipped;
    unreadable dates are blanked with a warning so the row still imports.
    A "Parent" column is resolved by project name after all rows are read.
    """
    if df is None or df.empty:
        return []

    column_map = {}
    for col in df.columns:
        field = HEADER_MAP.get(normalize_header(col))
        if field and field not in column_map.values():
            column_map[col] = field
    if "name" not in column_map.values():
        print(f"  ERROR: No project name column found. Found: {', '.join(str(c) for c in df.columns)}")
        return []

    projects = []
    parent_names = []
    used_ids = set()
    for idx, row in df.reset_index(drop=True).iterrows():
        row_num = idx + 2
        values = {field: row[col] for col, field in column_map.items()}
        name = clean_str(values.get("name"))
        if not name or name == "nan":
            continue  # skip blank rows

        dates = {}
        for key, label in (("start_date", "start date"), ("end_date", "end date")):
            try:
                dates[key] = parse_optional_date(values.get(key), context=f"row {row_num}, {label}")
            except ValueError as e:
                print(f"  WARNING: {e}. Treating it as blank.")
                dates[key] = None
        if dates["start_date"] and dates["end_date"] and dates["end_date"] < dates["start_date"]:
            print(f"  WARNING: Row {row_num}: '{name}' ends before it starts; dates ignored.")
            dates = {"start_date": None, "end_date": None}

        project_id = _clean_id(values.get("id"))
        if not project_id or project_id in used_ids:
            project_id = f"proj-{row_num}"
        used_ids.add(project_id)

        projects.append(make_project(
            id=project_id,
            name=name,
            branch=clean_str(values.get("branch")),
            start_date=dates["start_date"],
            end_date=dates["end_date"],
            assignees=parse_assignees(values.get("assignees")),
            days_required=_parse_days(values.get("days_required"), row_num),
            priority=parse_priority(values.get("priority")),
            type=parse_type(values.get("type")),
            blocked_by=clean_str(values.get("blocked_by")) or None,
            blocks_to=clean_str(values.get("blocks_to")) or None,
            reported_load=parse_percentage(values.get("reported_load")),
        ))
        parent_names.append((row_num, clean_str(values.get("parent"))))

    ids_by_name = {}
    for p in projects:
        ids_by_name.setdefault(p["name"], p["id"])
    for project, (row_num, parent_name) in zip(projects, parent_names):
        if not parent_name:
            continue
        parent_id = ids_by_name.get(parent_name)
        if parent_id is None or parent_id == project["id"]:
            print(f"  WARNING: Row {row_num}: parent '{parent_name}' not found; '{project['name']}' is a top-level project.")
            continue
        project["parent_id"] = parent_id

    return [compute_fields(p, config) for p in projects]


def load_projects(filepath, config, sheet_name=0):
    """Load projects from the first sheet (or sheet_name) of an Excel file."""
    try:
        df = pd.read_excel(filepath, sheet_name=sheet_name)
    except Exception as e:
        print(f"  WARNING: Could not read projects sheet: {e}")
        return []
    return projects_from_frame(df, config)


def load_holidays(filepath):
    """Load holidays from the optional 'Holidays' sheet (Date, Reason, Recurring)."""
    try:
        df = pd.read_excel(filepath, sheet_name="Holidays")
    except (ValueError, Exception):
        # Sheet doesn't exist
        return []
    if df.empty:
        return []
    df.columns = [normalize_header(c) for c in df.columns]
    date_col = next((c for c in ("date", "fecha") if c in df.columns), None)
    if date_col is None:
        print("  WARNING: Holidays sheet has no 'Date' column, skipping.")
        return []
    reason_col = next((c for c in ("reason", "name", "motivo") if c in df.columns), None)
    recurring_col = next((c for c in ("recurring", "recurrente", "anual") if c in df.columns), None)

    holidays = []
    for idx, row in df.iterrows():
        if _is_blank(row[date_col]):
            continue
        try:
            hol_date = parse_date(row[date_col], context=f"Holidays row {idx + 2}, 'Date'")
        except ValueError as e:
            print(f"  WARNING: Could not parse holiday row {idx + 2}: {e}")
            continue
        recurring = False
        if recurring_col is not None and not _is_blank(row[recurring_col]):
            raw = row[recurring_col]
            if isinstance(raw, (bool, np.bool_)):
                recurring = bool(raw)
            else:
                recurring = normalize_header(clean_str(raw)) in TRUTHY_STRINGS
        holidays.append({
            "date": hol_date,
            "reason": clean_str(row[reason_col]) if reason_col else "",
            "recurring": recurring,
        })
    return holidays


# ── Export ───────────────────────────────────────────────────────────────────

EXPORT_COLUMNS = [
    ("Project", 30), ("Branch", 15), ("Start", 12), ("End", 12), ("Assignees", 20),
    ("Days Required", 14), ("Priority", 10), ("Type", 10), ("Blocked By", 25),
    ("Blocks To", 25), ("Parent", 25), ("Assigned Days", 14), ("Balance", 10),
    ("Daily Load", 12), ("Total Hours", 12),
]

_HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
_HEADER_FILL = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
_THIN_BORDER = Border(
    left=Side(style="thin"), right=Side(style="thin"),
    top=Side(style="thin"), bottom=Side(style="thin"),
)


def _style_sheet(ws, widths):
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = _THIN_BORDER
    for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
        for cell in row:
            cell.border = _THIN_BORDER
            cell.alignment = Alignment(vertical="center")
    for idx, width in enumerate(widths):
        ws.column_dimensions[chr(ord("A") + idx)].width = width
    ws.freeze_panes = "A2"


def _add_load_formatting(ws, cell_range):
    """Colour load cells by LOAD_COLORS band."""
    # Rules are checked in order, so a boundary value lands in the lower band.
    lower = 0.0001
    for upper, band in LOAD_THRESHOLDS:
        colors = LOAD_COLORS[band]
        ws.conditional_formatting.add(
            cell_range,
            CellIsRule(operator="between", formula=[str(lower), str(upper)],
                       font=Font(color=colors["text"][1:]),
                       fill=PatternFill(bgColor=colors["bg"][1:])))
        lower = upper
    colors = LOAD_COLORS["critical"]
    ws.conditional_formatting.add(
        cell_range,
        CellIsRule(operator="greaterThan", formula=[str(lower)],
                   font=Font(bold=True, color=colors["text"][1:]),
                   fill=PatternFill(bgColor=colors["bg"][1:])))


def export_projects(projects, output_path):
    """Write the project table, derived columns included, to an Excel file."""
    names_by_id = {p.get("id"): p.get("name", "") for p in projects}
    wb = Workbook()
    ws = wb.active
    ws.title = "Projects"
    ws.append([header for header, _ in EXPORT_COLUMNS])
    for p in projects:
        ws.append([
            p.get("name", ""),
            p.get("branch", ""),
            p.get("start_date"),
            p.get("end_date"),
            " / ".join(p.get("assignees") or []),
            p.get("days_required", 0),
            p.get("priority", 1),
            p.get("type", "Project"),
            p.get("blocked_by") or "",
            p.get("blocks_to") or "",
            names_by_id.get(p.get("parent_id"), ""),
            p.get("assigned_days", 0),
            p.get("balance_days", 0),
            p.get("daily_load", 0),
            p.get("total_hours", 0),
        ])
    _style_sheet(ws, [width for _, width in EXPORT_COLUMNS])

    last_row = max(ws.max_row, 2)
    for row_idx in range(2, ws.max_row + 1):
        ws.cell(row=row_idx, column=3).number_format = "DD/MM/YYYY"
        ws.cell(row=row_idx, column=4).number_format = "DD/MM/YYYY"
        ws.cell(row=row_idx, column=14).number_format = "0%"
    _add_load_formatting(ws, f"N2:N{last_row}")
    ws.conditional_formatting.add(
        f"M2:M{last_row}",
        CellIsRule(operator="lessThan", formula=["0"],
                   font=Font(bold=True, color="B71C1C"), fill=PatternFill(bgColor="FFE2DD")))

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    wb.save(output_path)
    print(f"  Project export saved: {output_path}")


def generate_template(output_path):
    """Create an example workbook with a Projects sheet and a Holidays sheet."""
    wb = Workbook()

    ws = wb.active
    ws.title = "Projects"
    ws.append(["Project", "Branch", "Start", "End", "Assignees", "Days Required",
               "Priority", "Type", "Blocked By", "Blocks To", "Reported Load", "Parent"])
    example_projects = [
        ["Head Office Refit", "CORP", "2026-01-12", "2026-02-13", "Eduardo", 15, 4, "Project", "", "", "", ""],
        ["Naica Crystals Launch", "NORTH", "2026-01-12", "2026-01-23", "Dario", 5, 5, "Launch", "", "Naica Build", "", ""],
        ["Tijuana Checkout Remodel", "TIJUANA", "2026-01-12", "2026-01-30", "Eduardo", 2, 1, "Project", "", "", "", ""],
        ["Tijuana Outdoor Furniture", "TIJUANA", "2026-01-12", "2026-02-03", "Eduardo/Diana", 2, 3, "Project", "", "", "20%", ""],
        ["Naica Build", "NORTH", "2026-02-02", "2026-03-27", "", 0, 2, "Launch", "Naica Crystals Launch", "", "", ""],
        ["Naica Build - Structure", "NORTH", "2026-02-02", "2026-02-27", "Dario", 10, 2, "Launch", "", "", "", "Naica Build"],
        ["Naica Build - Finishes", "NORTH", "2026-03-02", "2026-03-27", "Dario", 8, 2, "Launch", "", "", "", "Naica Build"],
        ["Showroom", "JUAREZ", "", "", "Dario", 20, 1, "Project", "", "", "", ""],
        ["Stair Niches", "NORTH", "", "", "", 0, 1, "Radar", "", "", "", ""],
    ]
    for row in example_projects:
        ws.append(row)
    _style_sheet(ws, [30, 12, 12, 12, 18, 14, 10, 10, 25, 25, 14, 25])

    dv_type = DataValidation(type="list", formula1=f'"{",".join(PROJECT_TYPES)}"', allow_blank=True)
    dv_type.error = "Please select Project, Launch or Radar"
    dv_type.errorTitle = "Invalid Type"
    ws.add_data_validation(dv_type)
    dv_type.add("H2:H200")

    dv_priority = DataValidation(type="whole", operator="between", formula1="1", formula2="5",
                                 allow_blank=True)
    dv_priority.error = "Priority is a whole number from 1 to 5"
    dv_priority.errorTitle = "Invalid Priority"
    ws.add_data_validation(dv_priority)
    dv_priority.add("G2:G200")

    ws_hol = wb.create_sheet("Holidays")
    ws_hol.append(["Date", "Reason", "Recurring"])
    for hol in DEFAULT_HOLIDAYS:
        ws_hol.append([hol["date"].strftime("%Y-%m-%d"), hol["reason"],
                       "Yes" if hol["recurring"] else "No"])
    ws_hol.append(["2026-04-03", "Good Friday", "No"])
    _style_sheet(ws_hol, [16, 30, 12])

    dv_recurring = DataValidation(type="list", formula1='"Yes,No"', allow_blank=True)
    ws_hol.add_data_validation(dv_recurring)
    dv_recurring.add("C2:C100")

    wb.save(output_path)
    print(f"Template created: {output_path}")
    print("  - Sheet 'Projects': name, dates, assignees (Ana/Luis for several), days required")
    print("  - Sheet 'Holidays': one-off dates, or Recurring=Yes for every year")
    print("  - Parent column nests a project under another by name")
    print(f"\nEdit the file, then run again without --template to see the workload.")


# ── Chart: Workload ──────────────────────────────────────────────────────────

def render_workload_chart(buckets_by_person, output_path, granularity="week"):
    """Render grouped per-person load bars for each period bucket."""
    apply_style()

    persons = [p for p, buckets in buckets_by_person.items() if buckets]
    if not persons:
        print("  No workload data. Check: projects have both dates and an assignee.")
        return
    periods = buckets_by_person[persons[0]]
    n_persons = len(persons)
    x_positions = np.arange(len(periods))

    fig_height = max(6, n_persons * 1.2 + 3)
    fig = plt.figure(figsize=(STYLE["fig_width"], fig_height), facecolor=STYLE["bg_color"])
    ax = fig.add_axes([0.08, 0.15, 0.88, 0.72])

    bar_group_width = 0.8
    bar_width = bar_group_width / n_persons

    max_load = 1.0
    for pidx, person in enumerate(persons):
        bar_x = x_positions - bar_group_width / 2 + bar_width * pidx + bar_width / 2
        values = np.array([b["avg_load"] for b in buckets_by_person[person]]) * 100
        base_color = PERSON_COLORS[pidx % len(PERSON_COLORS)]
        colors = [STYLE["over_capacity_color"] if v > 100 else base_color for v in values]
        ax.bar(bar_x, values, bar_width * 0.9, color=colors, alpha=0.85,
               edgecolor="white", linewidth=0.5,
               hatch=PERSON_HATCHES.get(pidx % len(PERSON_HATCHES), ""), zorder=3)
        for i, v in enumerate(values):
            if v > 100:
                ax.text(bar_x[i], v + 2, f"{v:.0f}%", ha="center", fontsize=5.5,
                        color=STYLE["over_capacity_color"], fontweight="bold", zorder=5)
        if len(values):
            max_load = max(max_load, values.max() / 100)

    ax.axhline(100, color=STYLE["capacity_line_color"], linewidth=1.5,
               linestyle="--", alpha=0.7, zorder=4)

    ax.set_xticks(x_positions)
    ax.set_xticklabels([b["label"] for b in periods], rotation=45, ha="right",
                       fontsize=STYLE["tick_size"])
    ax.set_ylim(0, max_load * 100 * 1.2)

    legend_handles = [
        mpatches.Patch(facecolor=PERSON_COLORS[pidx % len(PERSON_COLORS)], edgecolor="white",
                       hatch=PERSON_HATCHES.get(pidx % len(PERSON_HATCHES), ""), alpha=0.85,
                       label=person)
        for pidx, person in enumerate(persons)
    ]
    legend_handles.append(mpatches.Patch(facecolor=STYLE["over_capacity_color"],
                                         edgecolor="white", alpha=0.85, label="Over capacity"))
    ax.legend(handles=legend_handles, loc="upper right", fontsize=STYLE["small_size"],
              framealpha=0.9, edgecolor=STYLE["grid_color"], fancybox=True)

    style_axes(ax, title=f"Average Daily Load per {granularity.capitalize()}",
               ylabel="Load (% of a working day)", show_grid_y=True)
    subtitle = f"{periods[0]['start'].strftime('%d %b %Y')} \u2014 {periods[-1]['end'].strftime('%d %b %Y')}"
    add_header_footer(fig, "Team Workload", subtitle)

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    fig.savefig(output_path, dpi=STYLE["dpi"], bbox_inches="tight", facecolor=STYLE["bg_color"])
    plt.close(fig)
    print(f"  Workload chart saved: {output_path}")


# ── Console Summary ──────────────────────────────────────────────────────────

def print_schedule_warnings(projects):
    """Flag schedules that cannot deliver the effort they promise."""
    warnings = []
    for p in projects:
        if is_infeasible(p):
            warnings.append(f"  WARNING: '{p['name']}' needs {p['days_required']:.4g} days but its "
                            f"range has no working days.")
        elif p.get("balance_days", 0) < 0:
            warnings.append(f"  WARNING: '{p['name']}' is overcommitted by "
                            f"{-p['balance_days']:.4g} day(s) ({p['assigned_days']} working days "
                            f"for {p['days_required']:.4g} required).")
        elif (p.get("start_date") is None or p.get("end_date") is None) \
                and float(p.get("days_required") or 0) > 0:
            warnings.append(f"  NOTE: '{p['name']}' has no dates yet; its "
                            f"{p['days_required']:.4g} days are not on anyone's calendar.")
    if warnings:
        print()
        print("SCHEDULE WARNINGS:")
        for w in warnings:
            print(w)


def print_workload(buckets_by_person, summaries=None):
    """Print each person's period loads as a table."""
    df = buckets_to_frame(buckets_by_person)
    print()
    print("=" * 60)
    print("  WORKLOAD")
    print("=" * 60)
    if df.empty:
        print("  No assigned, dated projects.")
        print("=" * 60)
        return
    for person, rows in df.groupby("person", sort=False):
        summary = (summaries or {}).get(person)
        header = f"  {person}"
        if summary:
            header += (f"  (avg {summary['avg_load']:.0%}, peak {summary['peak_load']:.0%}"
                       f"{' on ' + summary['peak_date'].strftime('%d %b') if summary['peak_date'] else ''})")
        print(header)
        for _, row in rows.iterrows():
            flag = "  OVER" if row["avg_load"] > 1.0 else ""
            print(f"    {row['label']:>9}  {row['avg_load']:>6.0%}{flag}  {row['projects']}")
    print("=" * 60)


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Workload Planning Tool \u2014 per-person daily load from an Excel project list"
    )
    parser.add_argument("--template", action="store_true",
                        help="Generate an example Excel workbook")
    parser.add_argument("--input", default=DEFAULT_INPUT,
                        help="Path to Excel input file (default: workload_data.xlsx)")
    parser.add_argument("--outdir", default=None,
                        help="Output directory for chart, export and summary (default: output/)")
    parser.add_argument("--granularity", default="week", choices=GRANULARITIES,
                        help="Period size for the workload table and chart (default: week)")
    parser.add_argument("--from", dest="date_from", default=None,
                        help="Start of the display window (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", default=None,
                        help="End of the display window (YYYY-MM-DD)")
    parser.add_argument("--mode", default="calculated", choices=LOAD_MODES,
                        help="Use calculated load, or the owner's reported load where given")
    parser.add_argument("--hours-per-day", type=float, default=DEFAULT_CONFIG["hours_per_day"],
                        help="Working hours in a day (default: 9)")
    parser.add_argument("--weekend", default="0,6",
                        help="Comma-separated non-working weekdays, 0=Sunday..6=Saturday (default: 0,6)")
    parser.add_argument("--split-shared-load", action="store_true",
                        help="Divide a shared project's load between its assignees")
    parser.add_argument("--no-chart", action="store_true", help="Skip the workload chart")
    parser.add_argument("--export", action="store_true",
                        help="Write the project table with computed columns to Excel")
    args = parser.parse_args(argv)

    if args.template:
        generate_template(args.input)
        return

    if not os.path.exists(args.input):
        print(f"Error: Input file not found: {args.input}")
        print("Run with --template first to create a template.")
        sys.exit(1)

    out_dir = args.outdir or DEFAULT_OUTDIR

    try:
        weekend = [int(d) for d in args.weekend.split(",") if d.strip()]
    except ValueError:
        print(f"  ERROR: Invalid --weekend '{args.weekend}'. Use day numbers like 0,6.")
        sys.exit(1)

    print(f"Loading data from: {args.input}")
    holidays = load_holidays(args.input)
    try:
        config = make_config(
            hours_per_day=args.hours_per_day,
            weekend_days=weekend,
            holidays=holidays or DEFAULT_HOLIDAYS,
            load_mode=args.mode,
            split_shared_load=args.split_shared_load,
        )
    except InvalidConfiguration as e:
        print(f"  ERROR: {e}")
        sys.exit(1)
    print(f"  Holidays: {len(config['holidays'])}"
          f"{'' if holidays else ' (defaults)'}")
    print(f"  Weekend: {', '.join(DAY_NAMES[d] for d in sorted(config['weekend_days'])) or 'none'}")

    projects = load_projects(args.input, config)
    print(f"  Projects: {len(projects)}")
    if not projects:
        print("  ERROR: No projects found.")
        sys.exit(1)

    cycles = find_cycles(projects)
    if cycles:
        print(f"  WARNING: {CyclicHierarchy(cycles)}. Shown as top-level projects.")

    projects = rollup_projects(projects, config)
    leaves = get_leaf_projects(projects)
    persons = get_persons(get_active_projects(leaves))
    print(f"  People: {', '.join(persons) or 'none'}")

    window = get_date_range(leaves)
    try:
        date_from = datetime.strptime(args.date_from, "%Y-%m-%d") if args.date_from else None
        date_to = datetime.strptime(args.date_to, "%Y-%m-%d") if args.date_to else None
    except ValueError:
        print("  ERROR: Invalid --from/--to date. Use YYYY-MM-DD format.")
        sys.exit(1)
    if date_from and date_to:
        window = (date_from, date_to)
    elif window is not None:
        window = (date_from or window[0], date_to or window[1])
    else:
        print("  WARNING: No dated projects. Nothing to chart.")
    if window is not None:
        print(f"  Window: {window[0].strftime('%d %b %Y')} to {window[1].strftime('%d %b %Y')}"
              f" ({args.granularity})")

    summary_capture = io.StringIO()
    _orig_stdout = sys.stdout
    sys.stdout = _TeeWriter(_orig_stdout, summary_capture)
    try:
        print_schedule_warnings(leaves)
        buckets_by_person = {}
        summaries = {}
        if window is not None:
            all_series = build_all_series(leaves, config)
            for person, series in all_series.items():
                buckets_by_person[person] = aggregate_by_period(
                    series, args.granularity, window, config)
                summaries[person] = get_person_summary(person, leaves, series)
        print_workload(buckets_by_person, summaries)
    finally:
        sys.stdout = _orig_stdout

    os.makedirs(out_dir, exist_ok=True)
    output_files = []
    if not args.no_chart and buckets_by_person:
        chart_path = os.path.join(out_dir, f"workload_{args.granularity}.png")
        render_workload_chart(buckets_by_person, chart_path, args.granularity)
        if os.path.exists(chart_path):
            output_files.append(chart_path)

    if args.export:
        export_path = os.path.join(out_dir, "projects_export.xlsx")
        export_projects(projects, export_path)
        output_files.append(export_path)

    summary_path = os.path.join(out_dir, "summary.txt")
    with open(summary_path, "w", encoding="utf-8") as sf:
        sf.write(summary_capture.getvalue())
    output_files.append(summary_path)

    print()
    print("  Output:")
    for f in output_files:
        print(f"    {os.path.abspath(f)}")
    print("\nDone.")


if __name__ == "__main__":
    main()
