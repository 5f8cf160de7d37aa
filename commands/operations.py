"""Operation and job commands for the active cluster."""
from commands.helpers import (
    add_group, add_parser, fail, format_time_ago, get_api, print_json, print_table,
    require_selected_cluster, state_icon,
)

STATUS_ICONS = {
    'completed': '✓',
    'success': '✓',
    'running': '⟳',
    'pending': '⟳',
    'failed': '✗',
    'cancelled': '✗',
}


def format_status(status):
    status = status or ''
    icon = STATUS_ICONS.get(status.lower()) or state_icon(status)
    return f"{icon} {status}".strip()


def print_jobs(jobs):
    rows = [
        [
            job.get('id', ''),
            job.get('name', ''),
            format_status(job.get('status')),
            format_time_ago(job.get('created_at')),
            format_time_ago(job.get('updated_at')),
        ]
        for job in jobs
    ]
    print_table(['ID', 'Name', 'Status', 'Created At', 'Updated At'], rows,
                empty_message="No jobs found for this operation.")


def cmd_list_operations(args):
    """List operations, or show one operation with its jobs."""
    cluster = require_selected_cluster()
    try:
        api = get_api(args)
        operations = api.list_operations(cluster['id'])
    except Exception as e:
        fail(f"Error listing operations: {e}")

    if args.operation_id:
        found = next((op for op in operations if op.get('id') == args.operation_id), None)
        if found is None:
            fail(f"Operation with ID {args.operation_id} not found in the active cluster.")
        try:
            jobs = api.list_operation_jobs(cluster['id'], args.operation_id)
        except Exception as e:
            fail(f"Error listing jobs: {e}")

        if args.json:
            print_json({**found, 'jobs': jobs})
            return
        print("Operation Details:")
        print(f"  ID: {found.get('id', '')}")
        print(f"  Name: {found.get('name', '')}")
        print(f"  Status: {format_status(found.get('status'))}")
        print(f"  Created At: {format_time_ago(found.get('created_at'))}")
        print(f"  Updated At: {format_time_ago(found.get('updated_at'))}")
        print("\nJobs:")
        print_jobs(jobs)
        return

    if args.json:
        print_json(operations)
        return

    rows = [
        [
            op.get('id', ''),
            op.get('name', ''),
            format_status(op.get('status')),
            format_time_ago(op.get('created_at')),
            format_time_ago(op.get('updated_at')),
        ]
        for op in operations
    ]
    print_table(['ID', 'Name', 'Status', 'Created At', 'Updated At'], rows,
                empty_message="No operations found for the active cluster.")


def cmd_list_jobs(args):
    cluster = require_selected_cluster()
    try:
        jobs = get_api(args).list_operation_jobs(cluster['id'], args.operation_id)
    except Exception as e:
        fail(f"Error listing jobs: {e}")
    if args.json:
        print_json(jobs)
    else:
        print_jobs(jobs)


def cmd_cancel_operation(args):
    try:
        get_api(args).cancel_operation(args.operation_id)
    except Exception as e:
        fail(f"Error cancelling operation: {e}")
    print(f"Operation '{args.operation_id}' cancelled successfully!")


def cmd_cancel_job(args):
    try:
        get_api(args).cancel_job(args.operation_id, args.job_id)
    except Exception as e:
        fail(f"Error cancelling job: {e}")
    print(f"Job '{args.job_id}' cancelled successfully!")


def register_commands(subparsers):
    """Register `cluster operations` commands."""
    _, sub = add_group(subparsers, 'operations', 'Inspect and cancel operations on the active cluster',
                       aliases=['operation', 'ops'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List operations')
    list_parser.add_argument('operation_id', nargs='?', help='Show details and jobs for this operation')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_operations)

    jobs_parser = add_parser(sub, 'jobs', help='List the jobs of an operation')
    jobs_parser.add_argument('operation_id', help='Operation ID')
    jobs_parser.add_argument('--json', action='store_true', help='Output as JSON')
    jobs_parser.set_defaults(func=cmd_list_jobs)

    cancel_parser = add_parser(sub, 'cancel', help='Cancel an operation')
    cancel_parser.add_argument('operation_id', help='Operation ID')
    cancel_parser.set_defaults(func=cmd_cancel_operation)

    cancel_job_parser = add_parser(sub, 'cancel-job', help='Cancel a single job of an operation')
    cancel_job_parser.add_argument('operation_id', help='Operation ID')
    cancel_job_parser.add_argument('job_id', help='Job ID')
    cancel_job_parser.set_defaults(func=cmd_cancel_job)
