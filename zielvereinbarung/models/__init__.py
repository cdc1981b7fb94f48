from zielvereinbarung.models.user import User, UserRole
from zielvereinbarung.models.session import Session
from zielvereinbarung.models.tokens import PasswordResetToken, EmailVerificationToken
from zielvereinbarung.models.form import School, Form, FormStatus, AccessCode, Entry, Comment
from zielvereinbarung.models.audit_log import AuditLog, AuditAction
