"""
Tests for enrollment administration and course progress summaries
"""
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from instructor.models import Enrollment
from trainee.models import ProgressRecord
from trainee.services.completion import ContentCompletionTracker
from trainee.testing import enroll, make_content, make_course, make_module, make_profile, token_for


class EnrollmentAdminApiTest(APITestCase):

    def setUp(self):
        self.instructor = make_profile('instructor', with_user=True)
        self.trainee = make_profile('trainee', with_user=True)
        self.course = make_course(self.instructor)
        self.module = make_module(self.course)
        self.contents = [make_content(self.module, order=i) for i in range(2)]
        self.enrollment = enroll(self.trainee, self.course)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token_for(self.instructor)}')

    def complete(self, content):
        ContentCompletionTracker.complete_content(self.enrollment.id, content.id, self.module.id)

    def test_drop_enrollment(self):
        response = self.client.post(f'/api/instructor/enrollments/{self.enrollment.id}/drop/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'dropped')
        self.enrollment.refresh_from_db()
        self.assertEqual(self.enrollment.status, 'dropped')

    def test_reset_enrollment_clears_progress(self):
        self.complete(self.contents[0])

        response = self.client.post(f'/api/instructor/enrollments/{self.enrollment.id}/reset/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['progress_percentage'], 0)
        self.assertFalse(ProgressRecord.objects.filter(enrollment=self.enrollment).exists())

    def test_other_instructor_cannot_see_enrollment(self):
        stranger = make_profile('instructor', with_user=True)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token_for(stranger)}')

        response = self.client.post(f'/api/instructor/enrollments/{self.enrollment.id}/drop/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_enrollments(self):
        response = self.client.get('/api/instructor/enrollments/', {'course_id': str(self.course.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['trainee_name'], self.trainee.full_name)

    def test_course_progress_summary(self):
        self.complete(self.contents[0])

        response = self.client.get(f'/api/instructor/courses/{self.course.id}/progress-summary/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_enrollments'], 1)
        self.assertEqual(response.data['average_progress'], 50)
        self.assertEqual(response.data['enrollments_by_status']['in_progress'], 1)

    def test_course_summary_hidden_from_other_instructors(self):
        stranger = make_profile('instructor', with_user=True)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token_for(stranger)}')

        response = self.client.get(f'/api/instructor/courses/{self.course.id}/progress-summary/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unknown_course_summary(self):
        response = self.client.get('/api/instructor/courses/00000000-0000-0000-0000-000000000000/progress-summary/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class RecomputeProgressCommandTest(TestCase):

    def setUp(self):
        self.course = make_course(make_profile('instructor'))
        self.module = make_module(self.course)
        self.content = make_content(self.module)
        self.enrollment = enroll(make_profile('trainee'), self.course)
        ProgressRecord.objects.create(
            enrollment=self.enrollment, module=self.module, content=self.content, status='completed'
        )

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('recompute_progress', '--dry-run', stdout=out)

        self.assertIn('0% -> 100%', out.getvalue())
        self.assertEqual(Enrollment.objects.get(id=self.enrollment.id).progress_percentage, 0)

    def test_recompute_heals_stale_percentage(self):
        call_command('recompute_progress', '--course', str(self.course.id), stdout=StringIO())

        enrollment = Enrollment.objects.get(id=self.enrollment.id)
        self.assertEqual(enrollment.progress_percentage, 100)
        self.assertEqual(enrollment.status, 'completed')
