"""
Main Entry Point for Caregiver Rotation Scheduler

Command-line interface over the rotation generator, period reconstruction
and exports, with application-wide logging and error handling.
"""

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from .data_manager import (
    DataManager,
    DataManagerError,
    RotationConfig,
    DEFAULT_HORIZON_MONTHS,
    DEFAULT_START_TIME,
    DEFAULT_END_TIME,
    parse_date,
    validate_time,
    DataValidationError,
    SHIFT_WORK,
    SHIFT_OFF,
)
from .scheduler_logic import RotationScheduler, RotationError, NotFoundError, GenerationRequest
from .periods import reconstruct_periods, coverage_by_date, find_conflicts, find_gaps, caregiver_color
from .reporting import ExportManager, month_bounds

DATA_FILE_ENV = "CARE_ROTATION_DATA"

logger = logging.getLogger(__name__)


def setup_logging(log_dir: str = "logs", level: int = logging.INFO):
    """Setup application logging"""
    log_path = Path(log_dir)
    log_path.mkdir(exist_ok=True)

    log_file = log_path / f"care_rotation_{datetime.now().strftime('%Y%m%d')}.log"

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def handle_exception(exc_type, exc_value, exc_traceback):
    """Global exception handler"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logging.getLogger(__name__).error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


@dataclass
class AppContext:
    """Collaborators handed to every command handler"""
    data_manager: DataManager
    scheduler: RotationScheduler
    export_manager: ExportManager

    @classmethod
    def create(cls, data_file: Optional[str] = None) -> 'AppContext':
        data_file = data_file or os.environ.get(DATA_FILE_ENV)
        data_manager = DataManager(data_file)
        logger.info(f"Using data file {data_manager.data_file}")
        return cls(
            data_manager=data_manager,
            scheduler=RotationScheduler(data_manager),
            export_manager=ExportManager(data_manager),
        )


def _date_arg(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD")


def _time_arg(value: str) -> str:
    try:
        return validate_time(value)
    except DataValidationError as e:
        raise argparse.ArgumentTypeError(str(e))


def _month_arg(value: str):
    try:
        parsed = datetime.strptime(value, "%Y-%m")
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid month '{value}', expected YYYY-MM")
    return parsed.year, parsed.month


def _resolve_caregiver(ctx: AppContext, ref: str):
    """Look a caregiver up by id, then by name"""
    caregiver = ctx.data_manager.get_caregiver_by_id(ref) or ctx.data_manager.get_caregiver_by_name(ref)
    if caregiver is None:
        raise NotFoundError(f"Caregiver '{ref}' not found")
    return caregiver


# Command handlers
def cmd_caregiver_add(ctx: AppContext, args) -> int:
    outcome = ctx.scheduler.register_caregiver(
        args.name, args.phone, args.start_of_work,
        use_48h=not args.manual, start_time=args.start_time, end_time=args.end_time
    )
    caregiver = outcome["caregiver"]
    print(f"✅ Caregiver {caregiver.name} registered ({caregiver.id})")
    if outcome["generation"]:
        print(f"   {outcome['generation'].message}")
    return 0


def cmd_caregiver_list(ctx: AppContext, args) -> int:
    caregivers = ctx.data_manager.get_caregivers(include_archived=args.all)
    if not caregivers:
        print("No caregivers registered")
        return 0
    for index, caregiver in enumerate(caregivers):
        status = " [archived]" if caregiver.archived else ""
        start = caregiver.start_of_work.isoformat() if caregiver.start_of_work else "-"
        print(f"{caregiver.id}  {caregiver.name:<24} {caregiver.phone:<16} start={start} "
              f"color={caregiver_color(index).name}{status}")
    return 0


def cmd_caregiver_archive(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    ctx.data_manager.set_archived(caregiver.id, args.command == "archive")
    print(f"{caregiver.name} {'archived' if args.command == 'archive' else 'restored'}")
    return 0


def cmd_caregiver_delete(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    ctx.data_manager.delete_caregiver(caregiver.id)
    print(f"{caregiver.name} deleted with all shift records")
    return 0


def cmd_config_set(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    current = ctx.data_manager.get_config(caregiver.id) or RotationConfig(caregiver_id=caregiver.id)
    if args.start_time:
        current.start_time = args.start_time
    if args.end_time:
        current.end_time = args.end_time
    if args.weekly_hours is not None:
        current.weekly_hours = args.weekly_hours
    if args.manual:
        current.padrao48h = False
    try:
        ctx.data_manager.save_config(current)
    except DataManagerError as e:
        raise RotationError(str(e))
    print(f"Configuration saved for {caregiver.name}: {current.start_time}-{current.end_time}, "
          f"{current.weekly_hours}h/week, 48/48={'yes' if current.padrao48h else 'no'}")
    return 0


def cmd_config_show(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    config = ctx.data_manager.get_config(caregiver.id)
    if config is None:
        start, end = ctx.scheduler.resolve_times(caregiver.id)
        print(f"{caregiver.name}: no configuration, generated shifts use {start}-{end}")
        return 0
    print(f"{caregiver.name}: {config.start_time}-{config.end_time}, {config.weekly_hours}h/week, "
          f"48/48={'yes' if config.padrao48h else 'no'}")
    return 0


def cmd_generate(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    start_date = args.start_date or caregiver.start_of_work
    result = ctx.scheduler.generate(GenerationRequest(
        caregiver_id=caregiver.id,
        start_date=start_date,
        horizon_months=args.months,
        starts_working=not args.starts_off
    ))
    print(result.message)
    for error in result.errors:
        print(f"   ❌ {error}")
    return 0 if result.success else 1


def cmd_generate_group(ctx: AppContext, args) -> int:
    starter = _resolve_caregiver(ctx, args.starts_working)
    caregiver_ids = [_resolve_caregiver(ctx, ref).id for ref in args.caregivers] if args.caregivers else None
    result = ctx.scheduler.generate_group(
        args.start_date, starter.id, horizon_months=args.months,
        caregiver_ids=caregiver_ids, replace_existing=args.replace
    )
    if result.cleared_count:
        print(f"Removed {result.cleared_count} existing records")
    print(result.message)
    return 0 if result.success else 1


def cmd_shift_list(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    records = sorted(ctx.data_manager.list_shifts(caregiver.id), key=lambda r: r.date)
    if args.month:
        first_day, last_day = month_bounds(*args.month)
        records = [r for r in records if first_day <= r.date <= last_day]
    for record in records:
        note = f"  {record.note}" if record.note else ""
        print(f"{record.id}  {record.date}  {record.kind:<4}  {record.start_time}-{record.end_time}{note}")
    return 0


def cmd_shift_add(ctx: AppContext, args) -> int:
    caregiver = _resolve_caregiver(ctx, args.caregiver)
    record = ctx.scheduler.add_shift(
        caregiver.id, args.date, kind=SHIFT_OFF if args.off else SHIFT_WORK,
        start_time=args.start_time, end_time=args.end_time, note=args.note
    )
    print(f"✅ {record.kind} on {record.date} for {caregiver.name} ({record.id})")
    return 0


def cmd_shift_edit(ctx: AppContext, args) -> int:
    record = ctx.scheduler.edit_shift(args.shift_id, kind=args.kind, start_time=args.start_time,
                                      end_time=args.end_time, note=args.note)
    print(f"Updated {record.date}: {record.kind} {record.start_time}-{record.end_time}")
    return 0


def cmd_shift_delete(ctx: AppContext, args) -> int:
    ctx.scheduler.remove_shift(args.shift_id)
    print(f"Deleted shift {args.shift_id}")
    return 0


def cmd_periods(ctx: AppContext, args) -> int:
    caregivers = [_resolve_caregiver(ctx, args.caregiver)] if args.caregiver else ctx.data_manager.get_caregivers()
    if args.json:
        periods = [p.to_dict() for c in caregivers
                   for p in reconstruct_periods(ctx.data_manager.list_shifts(c.id), c.id)]
        print(json.dumps(periods, indent=2))
        return 0

    for caregiver in caregivers:
        periods = reconstruct_periods(ctx.data_manager.list_shifts(caregiver.id), caregiver.id)
        print(f"{caregiver.name}: {len(periods)} work period(s)")
        for period in periods:
            print(f"   {period.start_date} → {period.end_date}  {period.length_days} day(s), {period.duration_hours}h")
    return 0


def cmd_coverage(ctx: AppContext, args) -> int:
    year, month = args.month
    first_day, last_day = month_bounds(year, month)
    active = ctx.data_manager.get_active_caregivers()
    records = [r for c in active for r in ctx.data_manager.list_shifts(c.id)]
    coverage = coverage_by_date(records, first_day, last_day)
    conflicts = find_conflicts(coverage)
    gaps = find_gaps(coverage)
    print(f"{len(conflicts)} day(s) with more than one caregiver, {len(gaps)} day(s) uncovered")
    for day, _ in conflicts:
        print(f"   conflict {day}")
    for day in gaps:
        print(f"   gap {day}")
    return 0 if not conflicts and not gaps else 1


def cmd_clear(ctx: AppContext, args) -> int:
    if args.caregiver:
        caregiver_ids = [_resolve_caregiver(ctx, args.caregiver).id]
    else:
        if not args.force:
            print("Refusing to delete every shift record without --force")
            return 1
        caregiver_ids = None
    print(f"Deleted {ctx.scheduler.clear_shifts(caregiver_ids)} shift records")
    return 0


def cmd_export(ctx: AppContext, args) -> int:
    year, month = args.month
    if args.format == "all":
        results = ctx.export_manager.batch_export(year, month, args.output)
        for format_type, ok in results.items():
            print(f"{format_type}: {'ok' if ok else 'failed'}")
        return 0 if all(results.values()) else 1

    output = args.output
    if Path(output).is_dir():
        output = str(Path(output) / ctx.export_manager.get_default_filename(year, month, args.format))
    ok = ctx.export_manager.export_calendar(year, month, args.format, output)
    print(f"{'Exported' if ok else 'Failed to export'} {output}")
    return 0 if ok else 1


def cmd_summary(ctx: AppContext, args) -> int:
    year, month = args.month
    print(ctx.export_manager.report_generator.create_dashboard_summary(year, month))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="care-rotation",
        description="48h on / 48h off caregiver rotation scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  care-rotation caregiver add "Maria" 11987654321 --start-of-work 2025-01-01
  care-rotation generate-group 2025-01-01 --starts-working Maria
  care-rotation periods --caregiver Maria
  care-rotation shift add Maria 2025-01-10 --off --note "swap with Ana"
  care-rotation export 2025-01 pdf --output exports/
        """
    )
    parser.add_argument('--data-file', help=f'JSON data file (default: ${DATA_FILE_ENV} or package data dir)')
    parser.add_argument('--log-dir', default='logs', help='Directory for log files')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='group', help='Command to run')

    # caregiver commands
    caregiver_parser = subparsers.add_parser('caregiver', help='Manage caregivers')
    caregiver_sub = caregiver_parser.add_subparsers(dest='command')

    add_parser = caregiver_sub.add_parser('add', help='Register a caregiver')
    add_parser.add_argument('name')
    add_parser.add_argument('phone')
    add_parser.add_argument('--start-of-work', type=_date_arg, help='Generate the default rotation from this date')
    add_parser.add_argument('--start-time', default=DEFAULT_START_TIME)
    add_parser.add_argument('--end-time', default=DEFAULT_END_TIME)
    add_parser.add_argument('--manual', action='store_true', help='Do not use the 48/48 pattern')
    add_parser.set_defaults(handler=cmd_caregiver_add)

    list_parser = caregiver_sub.add_parser('list', help='List caregivers')
    list_parser.add_argument('--all', action='store_true', help='Include archived caregivers')
    list_parser.set_defaults(handler=cmd_caregiver_list)

    for name, help_text in (('archive', 'Archive a caregiver'), ('restore', 'Restore an archived caregiver')):
        archive_parser = caregiver_sub.add_parser(name, help=help_text)
        archive_parser.add_argument('caregiver', help='Caregiver id or name')
        archive_parser.set_defaults(handler=cmd_caregiver_archive)

    delete_parser = caregiver_sub.add_parser('delete', help='Delete a caregiver and all their shifts')
    delete_parser.add_argument('caregiver', help='Caregiver id or name')
    delete_parser.set_defaults(handler=cmd_caregiver_delete)

    # config commands
    config_parser = subparsers.add_parser('config', help='Rotation configuration')
    config_sub = config_parser.add_subparsers(dest='command')

    set_parser = config_sub.add_parser('set', help='Set default times for a caregiver')
    set_parser.add_argument('caregiver', help='Caregiver id or name')
    set_parser.add_argument('--start-time', type=_time_arg)
    set_parser.add_argument('--end-time', type=_time_arg)
    set_parser.add_argument('--weekly-hours', type=int)
    set_parser.add_argument('--manual', action='store_true', help='Mark schedule as manual (not 48/48)')
    set_parser.set_defaults(handler=cmd_config_set)

    show_parser = config_sub.add_parser('show', help='Show caregiver configuration')
    show_parser.add_argument('caregiver', help='Caregiver id or name')
    show_parser.set_defaults(handler=cmd_config_show)

    # generation
    generate_parser = subparsers.add_parser('generate', help='Generate the rotation of one caregiver')
    generate_parser.add_argument('caregiver', help='Caregiver id or name')
    generate_parser.add_argument('--start-date', type=_date_arg, help='Defaults to the caregiver start of work')
    generate_parser.add_argument('--months', type=int, default=DEFAULT_HORIZON_MONTHS)
    generate_parser.add_argument('--starts-off', action='store_true', help='Begin with an off block')
    generate_parser.set_defaults(handler=cmd_generate)

    group_parser = subparsers.add_parser('generate-group', help='Generate alternating rotations for the active caregivers')
    group_parser.add_argument('start_date', type=_date_arg)
    group_parser.add_argument('--starts-working', required=True, help='Caregiver who starts on a work block')
    group_parser.add_argument('--caregivers', nargs='+', help='Explicit group (default: all active caregivers)')
    group_parser.add_argument('--months', type=int, default=DEFAULT_HORIZON_MONTHS)
    group_parser.add_argument('--replace', action='store_true', help='Delete the group\'s existing records first')
    group_parser.set_defaults(handler=cmd_generate_group)

    # views
    periods_parser = subparsers.add_parser('periods', help='Show contiguous work periods')
    periods_parser.add_argument('--caregiver', help='Caregiver id or name')
    periods_parser.add_argument('--json', action='store_true', help='Print periods as JSON')
    periods_parser.set_defaults(handler=cmd_periods)

    # manual shift entries
    shift_parser = subparsers.add_parser('shift', help='Manual single-day records')
    shift_sub = shift_parser.add_subparsers(dest='command')

    shift_list_parser = shift_sub.add_parser('list', help='List the records of a caregiver')
    shift_list_parser.add_argument('caregiver', help='Caregiver id or name')
    shift_list_parser.add_argument('--month', type=_month_arg, help='YYYY-MM')
    shift_list_parser.set_defaults(handler=cmd_shift_list)

    shift_add_parser = shift_sub.add_parser('add', help='Add one day by hand')
    shift_add_parser.add_argument('caregiver', help='Caregiver id or name')
    shift_add_parser.add_argument('date', type=_date_arg)
    shift_add_parser.add_argument('--off', action='store_true', help='Record a day off instead of work')
    shift_add_parser.add_argument('--start-time', type=_time_arg)
    shift_add_parser.add_argument('--end-time', type=_time_arg)
    shift_add_parser.add_argument('--note')
    shift_add_parser.set_defaults(handler=cmd_shift_add)

    shift_edit_parser = shift_sub.add_parser('edit', help='Change one record')
    shift_edit_parser.add_argument('shift_id')
    shift_edit_parser.add_argument('--kind', choices=[SHIFT_WORK, SHIFT_OFF])
    shift_edit_parser.add_argument('--start-time', type=_time_arg)
    shift_edit_parser.add_argument('--end-time', type=_time_arg)
    shift_edit_parser.add_argument('--note')
    shift_edit_parser.set_defaults(handler=cmd_shift_edit)

    shift_delete_parser = shift_sub.add_parser('delete', help='Delete one record')
    shift_delete_parser.add_argument('shift_id')
    shift_delete_parser.set_defaults(handler=cmd_shift_delete)

    coverage_parser = subparsers.add_parser('coverage', help='Check daily coverage for a month')
    coverage_parser.add_argument('month', type=_month_arg, help='YYYY-MM')
    coverage_parser.set_defaults(handler=cmd_coverage)

    clear_parser = subparsers.add_parser('clear', help='Delete shift records')
    clear_parser.add_argument('--caregiver', help='Only this caregiver')
    clear_parser.add_argument('--force', action='store_true', help='Required to delete every record')
    clear_parser.set_defaults(handler=cmd_clear)

    export_parser = subparsers.add_parser('export', help='Export a month')
    export_parser.add_argument('month', type=_month_arg, help='YYYY-MM')
    export_parser.add_argument('format', choices=['pdf', 'excel', 'csv', 'all'])
    export_parser.add_argument('--output', default='.', help='File or directory')
    export_parser.set_defaults(handler=cmd_export)

    summary_parser = subparsers.add_parser('summary', help='Print a month summary')
    summary_parser.add_argument('month', type=_month_arg, help='YYYY-MM')
    summary_parser.set_defaults(handler=cmd_summary)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'handler', None):
        parser.print_help()
        return 2

    sys.excepthook = handle_exception
    setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    try:
        ctx = AppContext.create(args.data_file)
        # One file write per command instead of one per record
        with ctx.data_manager.deferred_save():
            return args.handler(ctx, args)
    except RotationError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"❌ {e}")
        return 1
    except DataManagerError as e:
        logger.error(f"Data error: {e}", exc_info=True)
        print(f"❌ Data error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
