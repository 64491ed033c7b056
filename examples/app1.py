# app1.py
# ------------------------------
# A home controller with two actions and a redirect
# ------------------------------
import logging

from minvc import MiniVC

logging.basicConfig(level=logging.INFO)

app = MiniVC(template_folder='templates')
home = app.mount('/home', app.controller(name='home'))

@home.action()
def index(request, response):
    home.render(request, response, 'home/index.html', {
        'title': 'Home',
        'greeting': 'Welcome to MiniVC',
    })

@home.action()
def about(request, response):
    home.render(request, response, 'home/about.html', {'title': 'About'})

# /home/start sends the browser on to /home/index
@home.action('start')
def start_action(request, response):
    home.redirect_local(request, response, '/home/index')

if __name__ == "__main__":
    # You can choose the server: 'wsgiref', 'waitress', 'paste', or 'twisted'
    app.run(host='127.0.0.1', port=5000, server='wsgiref')
