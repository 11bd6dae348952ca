"""
Unit Tests for the project and direct channel gates and ChatService
"""
import pytest

from app.core.exceptions import UnauthorizedError, ValidationError, ProjectNotFoundError, UserNotFoundError
from app.models.chat_message import ChatMessage
from app.models.project import Project, ProjectMember, ProjectType
from app.models.user import UserRole
from app.modules.auth.capabilities import ActorContext
from app.services.chat_service import (
    ChatService,
    DatabaseMessageTransport,
    MessageTransport,
    MAX_MESSAGE_LENGTH,
    can_post,
    direct_channel_id,
)


def individual(supervisor_id='sup', student_id='stu'):
    return Project(
        project_type=ProjectType.INDIVIDUAL,
        supervisor_id=supervisor_id,
        assigned_student_id=student_id,
        members=[],
    )


def group(supervisor_id='sup', member_ids=('m1', 'm2'), head_id='m1'):
    return Project(
        project_type=ProjectType.GROUP,
        supervisor_id=supervisor_id,
        project_head_id=head_id,
        members=[ProjectMember(user_id=m, position=i) for i, m in enumerate(member_ids)],
    )


class TestCanPost:
    """Who may speak on a project's channel"""

    def test_individual_student_and_supervisor(self):
        project = individual()

        assert can_post(ActorContext.for_role('stu', 'student'), project)
        assert can_post(ActorContext.for_role('sup', 'supervisor'), project)

    def test_other_student_cannot_post(self):
        assert not can_post(ActorContext.for_role('someone', 'student'), individual())

    def test_other_supervisor_cannot_post(self):
        assert not can_post(ActorContext.for_role('other-sup', 'supervisor'), individual())

    def test_group_head_posts_members_read(self):
        project = group()

        assert can_post(ActorContext.for_role('m1', 'student'), project)
        assert not can_post(ActorContext.for_role('m2', 'student'), project)

    def test_group_without_head(self):
        project = group(head_id=None)

        assert not can_post(ActorContext.for_role('m1', 'student'), project)
        assert can_post(ActorContext.for_role('sup', 'supervisor'), project)

    def test_super_admin_always_posts(self):
        assert can_post(ActorContext.for_role('admin', 'super-admin'), group(supervisor_id=None))

    def test_unknown_role_never_posts(self):
        assert not can_post(ActorContext.for_role('stu', 'guest'), individual())

    def test_individual_without_assignee(self):
        assert not can_post(ActorContext.for_role('stu', 'student'), individual(student_id=None))


class RecordingTransport:
    """In-memory transport"""

    def __init__(self):
        self.sent = []

    async def send(self, channel_id, actor_id, text):
        message = ChatMessage(channel_id=channel_id, sender_id=actor_id, text=text)
        self.sent.append(message)
        return message

    async def receive(self, channel_id):
        return [m for m in self.sent if m.channel_id == channel_id]


class TestChatService:

    async def test_post_and_list(self, db_session, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        service = ChatService(db_session)

        await service.post_message(ActorContext.for_user(student), project.id, '  Draft uploaded  ')
        await service.post_message(ActorContext.for_user(supervisor), project.id, 'Thanks, reviewing')

        messages = await service.list_messages(ActorContext.for_user(student), project.id)

        assert [m.text for m in messages] == ['Draft uploaded', 'Thanks, reviewing']
        assert [m.sender_id for m in messages] == [student.id, supervisor.id]

    async def test_member_reads_but_cannot_post(self, db_session, make_project, supervisor, student, other_student):
        project = await make_project(supervisor=supervisor, members=[student, other_student], head=student)
        service = ChatService(db_session)

        with pytest.raises(UnauthorizedError):
            await service.post_message(ActorContext.for_user(other_student), project.id, 'hello')

        assert await service.list_messages(ActorContext.for_user(other_student), project.id) == []

    async def test_permission_checked_before_text(self, db_session, make_project, supervisor, student, other_student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        service = ChatService(db_session)

        with pytest.raises(UnauthorizedError):
            await service.post_message(ActorContext.for_user(other_student), project.id, '')

    @pytest.mark.parametrize('text', ['', '   ', 'x' * (MAX_MESSAGE_LENGTH + 1)])
    async def test_bad_text_rejected(self, db_session, make_project, supervisor, student, text):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        service = ChatService(db_session)

        with pytest.raises(ValidationError):
            await service.post_message(ActorContext.for_user(student), project.id, text)

    async def test_outsider_cannot_read(self, db_session, make_project, supervisor, student, other_student):
        project = await make_project(supervisor=supervisor, assigned_student=student)

        with pytest.raises(UnauthorizedError):
            await ChatService(db_session).list_messages(ActorContext.for_user(other_student), project.id)

    async def test_unknown_project(self, db_session, student):
        with pytest.raises(ProjectNotFoundError):
            await ChatService(db_session).post_message(ActorContext.for_user(student), 'missing', 'hi')

    async def test_custom_transport(self, db_session, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        transport = RecordingTransport()
        service = ChatService(db_session, transport=transport)

        await service.post_message(ActorContext.for_user(supervisor), project.id, 'ping')

        assert isinstance(transport, MessageTransport)
        assert [m.text for m in transport.sent] == ['ping']
        assert await DatabaseMessageTransport(db_session).receive(project.id) == []


class TestDirectChannel:
    """One to one messages between a student and a supervisor who oversees them"""

    def test_channel_id_is_symmetric(self):
        assert direct_channel_id('b', 'a') == direct_channel_id('a', 'b') == 'dm:a:b'

    async def test_allocated_supervisor_and_student(self, db_session, make_user, supervisor):
        student = await make_user(UserRole.STUDENT, supervisor_id=supervisor.id)
        service = ChatService(db_session)

        await service.post_direct(ActorContext.for_user(student), supervisor.id, 'Can we meet Friday?')
        await service.post_direct(ActorContext.for_user(supervisor), student.id, ' Yes, 10am ')

        from_student = await service.list_direct(ActorContext.for_user(student), supervisor.id)
        from_supervisor = await service.list_direct(ActorContext.for_user(supervisor), student.id)

        assert [m.text for m in from_student] == ['Can we meet Friday?', 'Yes, 10am']
        assert [m.id for m in from_supervisor] == [m.id for m in from_student]
        assert {m.channel_id for m in from_student} == {direct_channel_id(student.id, supervisor.id)}

    async def test_project_supervisor_and_group_member(
        self, db_session, make_project, supervisor, student, other_student
    ):
        await make_project(supervisor=supervisor, members=[student, other_student], head=student)
        service = ChatService(db_session)

        message = await service.post_direct(ActorContext.for_user(other_student), supervisor.id, 'Question on phase 2')

        assert message.sender_id == other_student.id

    async def test_unrelated_supervisor_rejected(self, db_session, make_project, supervisor, other_supervisor, student):
        await make_project(supervisor=supervisor, assigned_student=student)
        service = ChatService(db_session)

        with pytest.raises(UnauthorizedError):
            await service.post_direct(ActorContext.for_user(student), other_supervisor.id, 'hello')
        with pytest.raises(UnauthorizedError):
            await service.list_direct(ActorContext.for_user(other_supervisor), student.id)

    async def test_students_cannot_message_each_other(self, db_session, student, other_student):
        with pytest.raises(UnauthorizedError):
            await ChatService(db_session).post_direct(ActorContext.for_user(student), other_student.id, 'hi')

    async def test_permission_checked_before_text(self, db_session, student, other_supervisor):
        with pytest.raises(UnauthorizedError):
            await ChatService(db_session).post_direct(ActorContext.for_user(student), other_supervisor.id, '')

    async def test_bad_text_rejected(self, db_session, make_user, supervisor):
        student = await make_user(UserRole.STUDENT, supervisor_id=supervisor.id)

        with pytest.raises(ValidationError):
            await ChatService(db_session).post_direct(ActorContext.for_user(student), supervisor.id, '   ')

    async def test_super_admin_reaches_anyone(self, db_session, super_admin, student, other_supervisor):
        service = ChatService(db_session)

        await service.post_direct(ActorContext.for_user(super_admin), student.id, 'Welcome')
        await service.post_direct(ActorContext.for_user(other_supervisor), super_admin.id, 'Capacity question')

        assert [m.text for m in await service.list_direct(ActorContext.for_user(student), super_admin.id)] == ['Welcome']

    async def test_self_and_unknown_recipient(self, db_session, student):
        service = ChatService(db_session)

        with pytest.raises(ValidationError):
            await service.post_direct(ActorContext.for_user(student), student.id, 'note to self')
        with pytest.raises(UserNotFoundError):
            await service.post_direct(ActorContext.for_user(student), 'missing', 'hi')

    async def test_direct_messages_stay_out_of_project_channel(
        self, db_session, make_project, supervisor, student
    ):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        service = ChatService(db_session)

        await service.post_direct(ActorContext.for_user(student), supervisor.id, 'private')

        assert await service.list_messages(ActorContext.for_user(student), project.id) == []
