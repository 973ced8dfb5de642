# elections/responses.py

# Unified {success, message, data} envelope used by every JSON endpoint

from flask import jsonify


def success_response(status_code, message, data=None):
    return jsonify({
        'success': True,
        'message': message,
        'data': data,
    }), status_code


def error_response(status_code, message):
    return jsonify({
        'success': False,
        'message': message,
        'data': None,
    }), status_code
