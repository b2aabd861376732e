"""
TapSign - Flask Backend
Staff upload a PDF, mark where it must be signed, and send the link to a boss.
"""

import json
import logging
import os
import uuid
from datetime import datetime

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

from config import Config
from errors import InvalidInputError, SigningError
from models import (STATUS_PENDING, STATUS_REJECTED, STATUS_SIGNED, STATUSES,
                    Boss, Signature, SignRequest, db, seed_bosses)
from pdf_signer import embed_signature, get_pdf_info, parse_areas, validate_areas, validate_preview_width
from signature_processor import decode_data_url, process_signature, validate_image
from whatsapp import default_message, format_phone_number, generate_link

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

DEFAULT_BOSSES = [
    {'name': 'John Tan', 'phone_number': '+60123456789'},
    {'name': 'Mary Lim', 'phone_number': '+60198765432'},
    {'name': 'David Wong', 'phone_number': '+60187654321'},
]

SIGNATURE_TYPES = ('DRAWN', 'UPLOADED')


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    CORS(app, origins=app.config['CORS_ORIGINS'])
    db.init_app(app)

    app.register_blueprint(api)
    register_error_handlers(app)

    create_directories(app)
    with app.app_context():
        db.create_all()

    return app


# Create directories
def create_directories(app):
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    os.makedirs(app.config['SIGNED_FOLDER'], exist_ok=True)
    os.makedirs(app.config['SIGNATURES_FOLDER'], exist_ok=True)


# Helper: Check allowed file extensions
def allowed_file(filename, allowed_extensions):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed_extensions


def public_url(path):
    return f"{current_app.config['BASE_URL'].rstrip('/')}{path}"


def get_request_data():
    """Form fields for multipart posts, JSON body otherwise."""
    if request.form:
        return request.form
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def find_sign_request(link_id):
    return SignRequest.query.filter_by(unique_link=link_id).first()


def remove_files(*paths):
    for path in paths:
        if path and os.path.exists(path):
            os.remove(path)


def signed_pdf_url(sign_request):
    if sign_request.signature and sign_request.signature.signed_pdf_path:
        return public_url(f"/api/signatures/{sign_request.unique_link}/download")
    return None


# ============== SIGN REQUEST ROUTES ==============

@api.route('/sign-requests', methods=['POST'])
def create_sign_request():
    """
    Create a sign request from an uploaded PDF.

    Multipart fields: pdf, staff_name, boss_id or manual_boss_name and
    manual_boss_phone, sign_area_coords (JSON list), preview_width (optional)
    """
    file = request.files.get('pdf')
    if not file or file.filename == '':
        return jsonify({'error': 'PDF file is required'}), 400

    if not allowed_file(file.filename, current_app.config['ALLOWED_PDF_EXTENSIONS']):
        return jsonify({'error': 'Only PDF files are allowed'}), 400

    staff_name = request.form.get('staff_name', '').strip()
    if not staff_name:
        return jsonify({'error': 'Staff name is required'}), 400

    boss = None
    boss_id = request.form.get('boss_id')
    manual_boss_name = request.form.get('manual_boss_name', '').strip() or None
    manual_boss_phone = request.form.get('manual_boss_phone', '').strip() or None

    if boss_id:
        boss = db.session.get(Boss, int(boss_id)) if boss_id.isdigit() else None
        if not boss:
            return jsonify({'error': 'Boss not found'}), 400
    elif not manual_boss_name or not manual_boss_phone:
        return jsonify({'error': 'Please select a boss or provide manual boss details'}), 400

    raw_coords = request.form.get('sign_area_coords')
    if not raw_coords:
        return jsonify({'error': 'At least one signature area is required'}), 400

    pdf_data = file.read()
    if len(pdf_data) > current_app.config['MAX_PDF_SIZE']:
        return jsonify({'error': 'PDF file is too large'}), 413

    try:
        areas = parse_areas(json.loads(raw_coords))
        if not areas:
            raise InvalidInputError('At least one signature area is required')

        preview_width = request.form.get('preview_width')
        preview_width = float(preview_width) if preview_width else current_app.config['PREVIEW_WIDTH']
        if preview_width is not None:
            validate_preview_width(preview_width)

        pdf_info = get_pdf_info(pdf_data)
        validate_areas(areas, pdf_info['num_pages'])
    except SigningError as e:
        return jsonify({'error': str(e)}), 400
    except ValueError:
        return jsonify({'error': 'Signature areas and preview width must be valid numbers'}), 400

    # Save file
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    original_filename = secure_filename(file.filename)
    filename = f"{timestamp}_{uuid.uuid4().hex[:8]}_{original_filename}"
    filepath = os.path.join(current_app.config['UPLOAD_FOLDER'], filename)

    try:
        with open(filepath, 'wb') as f:
            f.write(pdf_data)

        sign_request = SignRequest(
            staff_name=staff_name,
            pdf_path=filepath,
            original_filename=original_filename,
            boss=boss,
            manual_boss_name=None if boss else manual_boss_name,
            manual_boss_phone=None if boss else manual_boss_phone,
            sign_area_coords=[area.to_dict() for area in areas],
            preview_width=preview_width,
            unique_link=str(uuid.uuid4()),
            status=STATUS_PENDING
        )
        db.session.add(sign_request)
        db.session.commit()
    except Exception:
        db.session.rollback()
        remove_files(filepath)
        logger.exception("Failed to create sign request for %s", staff_name)
        return jsonify({'error': 'Failed to create sign request'}), 500

    shareable_link = public_url(f"/sign/{sign_request.unique_link}")
    boss_phone = format_phone_number(sign_request.boss_phone, current_app.config['DEFAULT_COUNTRY_CODE'])

    logger.info("Created sign request %s with %d area(s)", sign_request.id, len(areas))

    return jsonify({
        'message': 'Sign request created successfully',
        'sign_request': {
            'id': sign_request.id,
            'unique_link': sign_request.unique_link,
            'shareable_link': shareable_link,
            'status_link': public_url(f"/status/{sign_request.unique_link}"),
            'boss_phone': boss_phone,
            'whatsapp_link': generate_link(boss_phone, default_message(staff_name, shareable_link)),
            'pdf_info': pdf_info
        }
    }), 201


@api.route('/sign-requests/<link_id>', methods=['GET'])
def get_sign_request(link_id):
    """Get request details for the signing page."""
    sign_request = find_sign_request(link_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    signature = sign_request.signature
    return jsonify({
        'id': sign_request.id,
        'staff_name': sign_request.staff_name,
        'boss_name': sign_request.boss_name,
        'pdf_url': public_url(f"/api/sign-requests/{link_id}/file"),
        'sign_area_coords': sign_request.sign_area_coords,
        'preview_width': sign_request.preview_width,
        'status': sign_request.status,
        'created_at': sign_request.created_at.isoformat(),
        'signature': {
            'signed_at': signature.signed_at.isoformat() if signature.signed_at else None,
            'signed_pdf_url': signed_pdf_url(sign_request),
            'rejection_reason': signature.rejection_reason
        } if signature else None
    }), 200


@api.route('/sign-requests/<link_id>/file', methods=['GET'])
def get_sign_request_file(link_id):
    """Serve the original PDF."""
    sign_request = find_sign_request(link_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    return send_file(sign_request.pdf_path, mimetype='application/pdf')


# ============== SIGNATURE ROUTES ==============

def prepare_signature(signature_type, data):
    """
    Turn the posted signature into a PNG ready for embedding.
    Returns (png_bytes, error_response).
    """
    max_width = current_app.config['SIGNATURE_MAX_WIDTH']

    if signature_type == 'DRAWN':
        signature_data = data.get('signature_data')
        if not signature_data or not isinstance(signature_data, str):
            return None, (jsonify({'error': 'Signature data is required for drawn signatures'}), 400)
        # Canvas exports are already transparent
        return process_signature(decode_data_url(signature_data), remove_bg=False, max_width=max_width), None

    file = request.files.get('signature_image')
    if not file or file.filename == '':
        return None, (jsonify({'error': 'Signature image is required for uploaded signatures'}), 400)

    if not allowed_file(file.filename, current_app.config['ALLOWED_IMAGE_EXTENSIONS']):
        return None, (jsonify({'error': 'Only PNG and JPEG images are allowed for signatures'}), 400)

    image_data = file.read()
    if len(image_data) > current_app.config['MAX_SIGNATURE_SIZE']:
        return None, (jsonify({'error': 'Signature image is too large'}), 413)

    is_valid, error_msg = validate_image(image_data)
    if not is_valid:
        return None, (jsonify({'error': error_msg}), 400)

    return process_signature(image_data, remove_bg=True, max_width=max_width), None


@api.route('/signatures/<link_id>/sign', methods=['POST'])
def sign_document(link_id):
    """
    Sign a document.
    - DRAWN: signature_data holds the canvas data URL
    - UPLOADED: signature_image holds a photo, background is removed
    """
    sign_request = find_sign_request(link_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    if sign_request.status != STATUS_PENDING:
        return jsonify({'error': 'This document has already been processed'}), 400

    data = get_request_data()
    signature_type = data.get('signature_type')
    if signature_type not in SIGNATURE_TYPES:
        return jsonify({'error': 'Invalid signature type. Must be DRAWN or UPLOADED'}), 400

    # Everything up to here is in memory; nothing is stored if it fails
    try:
        signature_png, error_response = prepare_signature(signature_type, data)
        if error_response:
            return error_response

        with open(sign_request.pdf_path, 'rb') as f:
            pdf_data = f.read()

        signed_pdf = embed_signature(
            pdf_data,
            signature_png,
            parse_areas(sign_request.sign_area_coords),
            preview_width=sign_request.preview_width
        )
    except SigningError as e:
        logger.warning("Signing failed for request %s: %s", sign_request.id, e)
        return jsonify({'error': 'Failed to sign document', 'details': str(e)}), 422

    signature_path = os.path.join(current_app.config['SIGNATURES_FOLDER'], f"signature_{uuid.uuid4().hex}.png")
    signed_path = os.path.join(current_app.config['SIGNED_FOLDER'], f"signed_{uuid.uuid4().hex}.pdf")

    try:
        with open(signature_path, 'wb') as f:
            f.write(signature_png)
        with open(signed_path, 'wb') as f:
            f.write(signed_pdf)

        # Create or update signature record
        signature = sign_request.signature or Signature(request_id=sign_request.id)
        signature.signature_path = signature_path
        signature.signed_pdf_path = signed_path
        signature.type = signature_type
        signature.signed_at = datetime.utcnow()
        signature.rejection_reason = None
        db.session.add(signature)

        sign_request.status = STATUS_SIGNED
        db.session.commit()
    except Exception:
        db.session.rollback()
        remove_files(signature_path, signed_path)
        logger.exception("Failed to store signed document for request %s", sign_request.id)
        return jsonify({'error': 'Failed to sign document'}), 500

    logger.info("Request %s signed (%s)", sign_request.id, signature_type)

    return jsonify({
        'message': 'Document signed successfully',
        'signed_pdf_url': signed_pdf_url(sign_request)
    }), 200


@api.route('/signatures/<link_id>/reject', methods=['POST'])
def reject_document(link_id):
    """Reject a document with a reason."""
    reason = (get_request_data().get('reason') or '').strip()
    if not reason:
        return jsonify({'error': 'Rejection reason is required'}), 400

    sign_request = find_sign_request(link_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    if sign_request.status != STATUS_PENDING:
        return jsonify({'error': 'This document has already been processed'}), 400

    try:
        signature = sign_request.signature or Signature(request_id=sign_request.id)
        signature.type = 'REJECTED'
        signature.signed_at = None
        signature.rejection_reason = reason
        db.session.add(signature)

        sign_request.status = STATUS_REJECTED
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to reject request %s", sign_request.id)
        return jsonify({'error': 'Failed to reject document'}), 500

    logger.info("Request %s rejected", sign_request.id)
    return jsonify({'message': 'Document rejected'}), 200


@api.route('/signatures/<link_id>/status', methods=['GET'])
def get_signature_status(link_id):
    """Check signing status."""
    sign_request = find_sign_request(link_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    return jsonify({
        **sign_request.to_dict(),
        'signed_pdf_url': signed_pdf_url(sign_request)
    }), 200


@api.route('/signatures/<link_id>/download', methods=['GET'])
def download_signed_document(link_id):
    """Download signed PDF."""
    sign_request = find_sign_request(link_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    signature = sign_request.signature
    if sign_request.status != STATUS_SIGNED or not signature or not signature.signed_pdf_path:
        return jsonify({'error': 'Signed document not available'}), 400

    return send_file(
        signature.signed_pdf_path,
        as_attachment=True,
        download_name=f"signed-document-{sign_request.id}.pdf"
    )


# ============== BOSS ROUTES ==============

@api.route('/bosses', methods=['GET'])
def get_bosses():
    bosses = Boss.query.order_by(Boss.id).all()
    return jsonify([boss.to_dict() for boss in bosses]), 200


# ============== ADMIN ROUTES ==============

@api.route('/admin/statistics', methods=['GET'])
def get_statistics():
    """Request counts per status."""
    return jsonify({
        'total': SignRequest.query.count(),
        'pending': SignRequest.query.filter_by(status=STATUS_PENDING).count(),
        'signed': SignRequest.query.filter_by(status=STATUS_SIGNED).count(),
        'rejected': SignRequest.query.filter_by(status=STATUS_REJECTED).count()
    }), 200


@api.route('/admin/requests', methods=['GET'])
def get_admin_requests():
    """List sign requests, newest first, optionally filtered by status."""
    status = request.args.get('status', 'all').upper()

    query = SignRequest.query
    if status != 'ALL':
        if status not in STATUSES:
            return jsonify({'error': f'Unknown status: {status}'}), 400
        query = query.filter_by(status=status)

    sign_requests = query.order_by(SignRequest.created_at.desc(), SignRequest.id.desc()).all()

    return jsonify({
        'requests': [
            {
                **sign_request.to_dict(),
                'status_link': public_url(f"/status/{sign_request.unique_link}"),
                'signed_pdf_url': signed_pdf_url(sign_request)
            }
            for sign_request in sign_requests
        ]
    }), 200


@api.route('/admin/requests/<int:request_id>', methods=['GET'])
def get_admin_request(request_id):
    """Detailed request info."""
    sign_request = db.session.get(SignRequest, request_id)
    if not sign_request:
        return jsonify({'error': 'Sign request not found'}), 404

    signature_info = None
    signature = sign_request.signature
    if signature:
        signature_info = signature.to_dict()
        signature_info['signature_url'] = None
        if signature.signature_path:
            signature_info['signature_url'] = public_url(f"/api/admin/requests/{request_id}/signature")
        signature_info['signed_pdf_url'] = signed_pdf_url(sign_request)

    return jsonify({
        **sign_request.to_dict(),
        'pdf_url': public_url(f"/api/sign-requests/{sign_request.unique_link}/file"),
        'sign_area_coords': sign_request.sign_area_coords,
        'preview_width': sign_request.preview_width,
        'sign_link': public_url(f"/sign/{sign_request.unique_link}"),
        'status_link': public_url(f"/status/{sign_request.unique_link}"),
        'signature': signature_info
    }), 200


@api.route('/admin/requests/<int:request_id>/signature', methods=['GET'])
def get_admin_request_signature(request_id):
    """Serve the processed signature image."""
    sign_request = db.session.get(SignRequest, request_id)
    if not sign_request or not sign_request.signature or not sign_request.signature.signature_path:
        return jsonify({'error': 'Signature not found'}), 404

    return send_file(sign_request.signature.signature_path, mimetype='image/png')


# ============== UTILITY ROUTES ==============

@api.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({'status': 'healthy', 'timestamp': datetime.utcnow().isoformat()}), 200


# ============== ERROR HANDLERS ==============

def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({'error': 'File too large'}), 413

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({'error': 'Internal server error'}), 500


# ============== MAIN ==============

if __name__ == '__main__':
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    app = create_app()

    with app.app_context():
        for boss in seed_bosses(DEFAULT_BOSSES):
            logger.info("Created boss: %s (%s)", boss.name, boss.phone_number)

    app.run(debug=True, port=3000)
