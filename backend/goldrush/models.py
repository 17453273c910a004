from datetime import datetime, timezone
from goldrush import db
from flask_login import UserMixin

ROLE_MASTER_ADMIN = 'master_admin'
ROLE_TEAM_LEAD = 'team_lead'
ROLE_MEMBER = 'member'

FACTION_INNOCENT = 'innocent'
FACTION_TRAITOR = 'traitor'
FACTIONS = (FACTION_INNOCENT, FACTION_TRAITOR)

STATUS_NOT_STARTED = 'not_started'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'

GAME_STATE_ID = 1


def utcnow():
    """Naive UTC timestamp; all stored times use this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False, default=ROLE_MEMBER)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    membership = db.relationship('TeamMember', back_populates='user', uselist=False)

    @property
    def team_id(self):
        return self.membership.team_id if self.membership else None

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'created_at': isoformat(self.created_at),
        }


class Location(db.Model):
    __tablename__ = 'locations'
    id = db.Column(db.Integer, primary_key=True)
    location_name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'location_name': self.location_name,
            'description': self.description,
        }


class Team(db.Model):
    __tablename__ = 'teams'
    id = db.Column(db.Integer, primary_key=True)
    team_name = db.Column(db.String(128), unique=True, nullable=False)
    team_code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    team_type = db.Column(db.String(16), nullable=False)
    team_lead_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, unique=True)
    # Negative scores mark disqualified teams
    total_score = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    team_lead = db.relationship('User', foreign_keys=[team_lead_id])
    members = db.relationship('TeamMember', back_populates='team', order_by='TeamMember.joined_at')

    def to_dict(self, include_members=False):
        data = {
            'id': self.id,
            'team_name': self.team_name,
            'team_code': self.team_code,
            'team_type': self.team_type,
            'team_lead_id': self.team_lead_id,
            'total_score': self.total_score,
            'member_count': len(self.members),
        }
        if include_members:
            data['members'] = [
                {
                    'id': m.user.id,
                    'email': m.user.email,
                    'role': m.user.role,
                    'is_lead': m.user_id == self.team_lead_id,
                    'joined_at': isoformat(m.joined_at),
                }
                for m in self.members
            ]
        return data


class TeamMember(db.Model):
    __tablename__ = 'team_members'
    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False, index=True)
    # A user belongs to at most one team
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    team = db.relationship('Team', back_populates='members')
    user = db.relationship('User', back_populates='membership')


class GoldBar(db.Model):
    __tablename__ = 'gold_bars'
    __table_args__ = (
        db.CheckConstraint('location_id <> clue_location_id', name='ck_gold_bar_clue_elsewhere'),
    )
    id = db.Column(db.Integer, primary_key=True)
    qr_code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=False)
    clue_text = db.Column(db.Text, nullable=False)
    clue_location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=False)
    is_scanned = db.Column(db.Boolean, nullable=False, default=False)
    scanned_by_team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=True)
    scanned_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    location = db.relationship('Location', foreign_keys=[location_id])
    clue_location = db.relationship('Location', foreign_keys=[clue_location_id])
    scanned_by_team = db.relationship('Team', foreign_keys=[scanned_by_team_id])

    def to_dict(self):
        return {
            'id': self.id,
            'qr_code': self.qr_code,
            'points': self.points,
            'location_id': self.location_id,
            'location_name': self.location.location_name if self.location else None,
            'clue_text': self.clue_text,
            'clue_location_id': self.clue_location_id,
            'clue_location_name': self.clue_location.location_name if self.clue_location else None,
            'is_scanned': self.is_scanned,
            'scanned_by_team_id': self.scanned_by_team_id,
            'scanned_by_team_name': self.scanned_by_team.team_name if self.scanned_by_team else None,
            'scanned_at': isoformat(self.scanned_at),
        }


class TeamClue(db.Model):
    __tablename__ = 'team_clues'
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), primary_key=True)
    current_clue_text = db.Column(db.Text, nullable=True)
    current_clue_location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=True)
    next_gold_bar_id = db.Column(db.Integer, db.ForeignKey('gold_bars.id'), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    clue_location = db.relationship('Location')

    def to_dict(self):
        return {
            'clue_text': self.current_clue_text,
            'clue_location_name': self.clue_location.location_name if self.clue_location else None,
        }


class Sabotage(db.Model):
    __tablename__ = 'sabotages'
    id = db.Column(db.Integer, primary_key=True)
    traitor_team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False, index=True)
    target_team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False, index=True)
    sabotage_start_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    sabotage_end_time = db.Column(db.DateTime, nullable=False)
    # Cached flag; validity is always recomputed from sabotage_end_time
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    traitor_team = db.relationship('Team', foreign_keys=[traitor_team_id])
    target_team = db.relationship('Team', foreign_keys=[target_team_id])

    def is_in_effect(self, now=None):
        return bool(self.is_active) and self.sabotage_end_time > (now or utcnow())

    def to_dict(self, now=None):
        return {
            'id': self.id,
            'traitor_team_id': self.traitor_team_id,
            'target_team_id': self.target_team_id,
            'saboteur_team_name': self.traitor_team.team_name if self.traitor_team else None,
            'victim_team_name': self.target_team.team_name if self.target_team else None,
            'sabotage_start_time': isoformat(self.sabotage_start_time),
            'sabotage_end_time': isoformat(self.sabotage_end_time),
            'is_active': self.is_in_effect(now),
        }


class GameState(db.Model):
    __tablename__ = 'game_state'
    id = db.Column(db.Integer, primary_key=True)
    current_round = db.Column(db.Integer, nullable=False, default=0)
    total_rounds = db.Column(db.Integer, nullable=False)
    round_duration = db.Column(db.Integer, nullable=False)
    sabotage_duration = db.Column(db.Integer, nullable=False)
    sabotage_cooldown = db.Column(db.Integer, nullable=False)
    sabotage_same_person_cooldown = db.Column(db.Integer, nullable=False)
    game_status = db.Column(db.String(32), nullable=False, default=STATUS_NOT_STARTED)
    round_start_time = db.Column(db.DateTime, nullable=True)
    round_end_time = db.Column(db.DateTime, nullable=True)
    is_leaderboard_published = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def round_has_elapsed(self, now=None):
        return (
            self.game_status == STATUS_IN_PROGRESS
            and self.round_end_time is not None
            and self.round_end_time <= (now or utcnow())
        )

    def to_dict(self):
        return {
            'current_round': self.current_round,
            'total_rounds': self.total_rounds,
            'round_duration': self.round_duration,
            'sabotage_duration': self.sabotage_duration,
            'sabotage_cooldown': self.sabotage_cooldown,
            'sabotage_same_person_cooldown': self.sabotage_same_person_cooldown,
            'game_status': self.game_status,
            'round_start_time': isoformat(self.round_start_time),
            'round_end_time': isoformat(self.round_end_time),
            'is_leaderboard_published': self.is_leaderboard_published,
        }


class ScanHistory(db.Model):
    __tablename__ = 'scans_history'
    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False, index=True)
    gold_bar_id = db.Column(db.Integer, db.ForeignKey('gold_bars.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    was_sabotaged = db.Column(db.Boolean, nullable=False, default=False)
    scanned_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    team = db.relationship('Team')
    gold_bar = db.relationship('GoldBar')

    def to_dict(self):
        return {
            'id': self.id,
            'team_id': self.team_id,
            'team_name': self.team.team_name if self.team else None,
            'gold_bar_id': self.gold_bar_id,
            'user_id': self.user_id,
            'points': self.gold_bar.points if self.gold_bar else None,
            'points_earned': self.points_earned,
            'was_sabotaged': self.was_sabotaged,
            'scanned_at': isoformat(self.scanned_at),
        }
