"""
Django management command to auto-submit timed attempt sessions whose
deadline (plus the grace period) has passed without a submission.
Meant to run periodically from cron or a scheduler.
"""
from django.core.management.base import BaseCommand

from trainee.services.timer import expire_overdue_sessions


class Command(BaseCommand):
    help = 'Auto-submit running attempt sessions that are past their deadline'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List overdue sessions without submitting them',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No sessions will be submitted'))

        expired = expire_overdue_sessions(dry_run=dry_run)

        for session_id in expired:
            prefix = '[DRY RUN] Would auto-submit' if dry_run else 'Auto-submitted'
            self.stdout.write(f'  {prefix} session {session_id}')

        if expired:
            self.stdout.write(self.style.SUCCESS(f'{len(expired)} overdue session(s) processed'))
        else:
            self.stdout.write(self.style.SUCCESS('No overdue sessions'))
