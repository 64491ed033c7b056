# app2.py
# ------------------------------
# File upload with a multipart form
# ------------------------------
import logging
import os

from minvc import MiniVC, extract_filename

logging.basicConfig(level=logging.INFO)

UPLOAD_FOLDER = 'uploads'

app = MiniVC(template_folder='templates')
upload = app.mount('/upload', app.controller(name='upload'))

@upload.action()
def form(request, response):
    upload.render(request, response, 'upload/form.html', {'title': 'Upload a file'})

@upload.action()
def save(request, response):
    if request.method.upper() != 'POST':
        upload.redirect_local(request, response, '/upload/form')
        return
    part = request.get_part('file')
    # the client controls this name, keep only the last path component
    filename = os.path.basename(extract_filename(part) or '')
    if not filename:
        upload.redirect_local(request, response, '/upload/form')
        return
    os.makedirs(UPLOAD_FOLDER, exist_ok=True)
    part.save(os.path.join(UPLOAD_FOLDER, filename))
    upload.render(request, response, 'upload/saved.html', {
        'title': 'Saved',
        'filename': filename,
        'size': part.size,
    })

app.run()
