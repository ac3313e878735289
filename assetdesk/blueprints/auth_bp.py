"""
Auth Blueprint — username login and the user directory.

Endpoints:
    POST /api/login         — look a user up by username (no credentials)
    GET  /api/users         — all users
    POST /api/users         — create a user
    GET  /api/users/<id>    — single user
"""

import logging

from flask import Blueprint, jsonify

from assetdesk.blueprints import json_body, record_payload
from assetdesk.services import user_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api")


@auth_bp.route("/login", methods=["POST"])
def login():
    """Body: { username }"""
    return jsonify(user_service.login(json_body().get("username"))), 200


@auth_bp.route("/users", methods=["GET"])
def list_users():
    return jsonify(user_service.list_users()), 200


@auth_bp.route("/users", methods=["POST"])
def create_user():
    """Body: { username, role, branchCode?, branchName?, managerId?, reportingTo? }"""
    return jsonify(user_service.create_user(record_payload())), 201


@auth_bp.route("/users/<int:user_id>", methods=["GET"])
def get_user(user_id):
    return jsonify(user_service.get_user(user_id)), 200
