"""
Django management command to re-derive enrollment progress from the
durable completion records and attempts. Heals any percentage left stale
by a lost update; never lowers a stored percentage.
"""
from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from instructor.models import Course, Enrollment
from trainee.services.progress import ProgressAggregator


class Command(BaseCommand):
    help = 'Recompute progress for every active enrollment, optionally for one course'

    def add_arguments(self, parser):
        parser.add_argument('--course', help='Only recompute enrollments of this course id')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report computed percentages without saving them',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)
        course_id = options.get('course')

        enrollments = Enrollment.objects.exclude(status='dropped').select_related('course', 'trainee')
        if course_id:
            try:
                exists = Course.objects.filter(id=course_id).exists()
            except ValidationError:
                exists = False
            if not exists:
                raise CommandError(f'Course {course_id} does not exist')
            enrollments = enrollments.filter(course_id=course_id)

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be saved'))

        changed = 0
        for enrollment in enrollments:
            before = enrollment.progress_percentage
            if dry_run:
                computed = ProgressAggregator.compute(enrollment)['percentage']
                after = max(before, computed)
            else:
                after = ProgressAggregator.recompute(enrollment.id)['progress_percentage']

            if after != before:
                changed += 1
                self.stdout.write(f'  {enrollment.trainee} / {enrollment.course}: {before}% -> {after}%')

        verb = 'would change' if dry_run else 'changed'
        self.stdout.write(self.style.SUCCESS(f'{enrollments.count()} enrollment(s) checked, {changed} {verb}'))
