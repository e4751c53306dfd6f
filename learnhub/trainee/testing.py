"""
Builders for test data shared by the instructor and trainee test suites
"""
import uuid

from django.contrib.auth.models import User
from rest_framework.authtoken.models import Token

from accounts.models import Profile
from instructor.models import Assessment, Content, Course, Enrollment, Module, Question


def make_profile(role='trainee', first_name='Test', with_user=False):
    suffix = uuid.uuid4().hex[:8]
    user = None
    if with_user:
        user = User.objects.create_user(username=f'{role}-{suffix}', password='test123')
    return Profile.objects.create(
        user=user,
        first_name=first_name,
        last_name=role.title(),
        email=f'{role}-{suffix}@test.com',
        role=role,
    )


def token_for(profile):
    return Token.objects.create(user=profile.user).key


def make_course(instructor=None, title='Python Fundamentals'):
    return Course.objects.create(title=title, instructor=instructor, status='published')


def make_module(course, order=0, is_required=True, title=None):
    return Module.objects.create(
        course=course, order=order, is_required=is_required, title=title or f'Module {order + 1}'
    )


def make_content(module, content_type='text', duration=None, is_required=True, order=0):
    return Content.objects.create(
        module=module,
        content_type=content_type,
        title=f'{content_type.title()} {order + 1}',
        duration=duration,
        is_required=is_required,
        order=order,
    )


def make_assessment(course, module=None, questions=None, **fields):
    """
    Assessment with questions given as (type, options, correct_answer, points) tuples.
    Defaults to one multiple-choice and one multiple-select question, a point each.
    """
    assessment = Assessment.objects.create(course=course, module=module, title=fields.pop('title', 'Quiz'), **fields)
    if questions is None:
        questions = [
            ('multiple-choice', ['A', 'B', 'C'], 1, 1),
            ('multiple-select', ['A', 'B', 'C', 'D'], [0, 2], 1),
        ]
    for order, (question_type, options, correct, points) in enumerate(questions):
        Question.objects.create(
            assessment=assessment,
            type=question_type,
            text=f'Question {order + 1}',
            options=options,
            correct_answer=correct,
            points=points,
            explanation=f'Explanation {order + 1}',
            order=order,
        )
    return assessment


def question_ids(assessment):
    return [str(q.id) for q in assessment.questions.order_by('order')]


def enroll(trainee, course, **fields):
    return Enrollment.objects.create(trainee=trainee, course=course, **fields)
