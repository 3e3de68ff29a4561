from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, session, g
from flask_login import LoginManager, UserMixin, login_user, logout_user, current_user
from functools import wraps
import logging
import os

from supabase import create_client

from admin_console import ORDER_STATUSES, filter_orders, format_order, orders_for_customer, total_revenue
from auth_session import ProfileLoader, RetryPolicy, SessionResolver, fixed_delay
from cart_reconciler import CartReconciler
from form_validation import (ValidationError, parse_quantity_delta, parse_selected, validate_login,
                             validate_signup, validate_variant_choice)
from product_catalog import (ALL_CATEGORIES, AVAILABLE_COLORS, AVAILABLE_SIZES, CATEGORIES,
                             filter_by_category, listing_title, showing_label)
from session_gate import (ANONYMOUS, AUTH_SNAPSHOT_KEY, LANDING_VIEW, AuthState, DecisionKind, Resolution,
                          authorize, dump_auth_snapshot, home_for_role, load_auth_snapshot, ROLE_ADMIN)
from storefront_config import settings
from supabase_store import AuthFailure, AuthGateway, StoreError, StorefrontStore

# Get the absolute path to the templates directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATE_DIR = os.path.join(BASE_DIR, 'application', 'templates')
STATIC_DIR = os.path.join(BASE_DIR, 'application', 'static')

app = Flask(__name__,
            template_folder=TEMPLATE_DIR,
            static_folder=STATIC_DIR)
app.secret_key = settings.secret_key
app.config['SUPABASE_URL'] = settings.supabase_url
app.config['SUPABASE_KEY'] = settings.supabase_key
app.config['PROFILE_RETRY_ATTEMPTS'] = settings.profile_retry_attempts
app.config['PROFILE_RETRY_DELAY'] = settings.profile_retry_delay

# Flask-Login setup
login_manager = LoginManager()
login_manager.init_app(app)

# Supabase access/refresh token pair for the browser's remote session
TOKENS_KEY = 'sb_tokens'


def get_supabase():
    if 'supabase' not in g:
        url = app.config['SUPABASE_URL']
        key = app.config['SUPABASE_KEY']
        if not url or not key:
            raise RuntimeError("SUPABASE_URL / SUPABASE_ANON_KEY are empty. Set them in .env")
        g.supabase = create_client(url, key)
    return g.supabase


def get_store():
    return StorefrontStore(get_supabase())


def get_auth():
    return AuthGateway(get_supabase())


def build_resolver():
    policy = RetryPolicy(max_attempts=app.config['PROFILE_RETRY_ATTEMPTS'],
                         backoff=fixed_delay(app.config['PROFILE_RETRY_DELAY']))
    return SessionResolver(get_auth(), ProfileLoader(get_store(), policy), tokens=session.get(TOKENS_KEY))


class User(UserMixin):
    def __init__(self, session_info):
        self.session_info = session_info
        self.id = session_info.user_id or session_info.email
        self.user_id = session_info.user_id
        self.email = session_info.email
        self.role = session_info.role
        self.full_name = session_info.full_name

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @property
    def display_name(self):
        return self.session_info.display_name


@login_manager.user_loader
def load_user(user_id):
    cached = load_auth_snapshot(session.get(AUTH_SNAPSHOT_KEY))
    if cached and cached.authenticated and str(cached.user_id or cached.email) == user_id:
        return User(cached)
    return None


@login_manager.request_loader
def load_user_from_remote_session(req):
    """Restore a signed-in user from the stored Supabase session."""
    g.auth_state = AuthState(Resolution.RESOLVED, ANONYMOUS)
    if not session.get(TOKENS_KEY):
        return None

    resolver = build_resolver()
    try:
        state = resolver.resolve()
    finally:
        resolver.close()
    remember_remote_session(resolver)

    g.auth_state = state
    if not state.authenticated:
        return None
    session[AUTH_SNAPSHOT_KEY] = dump_auth_snapshot(state.session)
    return User(state.session)


def remember_remote_session(resolver):
    if resolver.remote_session and not resolver.profile_missing:
        session[TOKENS_KEY] = resolver.remote_session.tokens
        return
    session.pop(TOKENS_KEY, None)
    if resolver.profile_missing:
        # A remote session without a profile is an anomaly: drop the cache too
        session.pop(AUTH_SNAPSHOT_KEY, None)


def current_auth_state():
    if current_user.is_authenticated:
        return AuthState(Resolution.RESOLVED, current_user.session_info)
    return g.get('auth_state', AuthState(Resolution.RESOLVED, ANONYMOUS))


def require_auth(required_role=None, api=False):
    """Route guard. Pages are redirected, API calls get a JSON error."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            result = authorize(current_auth_state(), request.path, required_role, session)
            if result.recovered:
                login_user(User(result.state.session))

            decision = result.decision
            # Only hit for a pending auth state. request_loader resolves
            # synchronously, so normal page loads never see it.
            if decision.kind is DecisionKind.SHOW_LOADING:
                if api:
                    return jsonify({'error': 'Session is still loading'}), 503
                return render_template('loading.html'), 503
            if decision.kind is DecisionKind.REDIRECT:
                if api:
                    if decision.target == LANDING_VIEW:
                        return jsonify({'error': 'Please login first'}), 401
                    return jsonify({'error': 'Access denied'}), 403
                return redirect(decision.target)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def complete_login(session_info):
    session[AUTH_SNAPSHOT_KEY] = dump_auth_snapshot(session_info)
    login_user(User(session_info))
    return redirect(home_for_role(session_info.role))


def finish_sign_in(remote, full_name=None):
    resolver = build_resolver()
    try:
        state = resolver.resolve(remote, full_name=full_name)
    finally:
        resolver.close()
    remember_remote_session(resolver)

    if not state.authenticated:
        app.logger.warning(f"Signed in as {remote.email} but no profile could be loaded")
        return redirect(LANDING_VIEW)
    return complete_login(state.session)


# Context processor for cart count
@app.context_processor
def inject_cart_count():
    return dict(cart_count=CartReconciler(session).item_count())


@app.errorhandler(404)
def not_found(e):
    return redirect(LANDING_VIEW)


# =============================================
# AUTH ROUTES
# =============================================

@app.route('/')
def landing():
    return render_template('landing.html')


@app.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(home_for_role(current_user.role))

    if request.method == 'POST':
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')

        try:
            validate_login(email, password)
            remote = get_auth().sign_in(email, password)
        except (ValidationError, AuthFailure) as e:
            flash(f'❌ {e}', 'error')
            return render_template('login.html', email=email), 400

        return finish_sign_in(remote)

    return render_template('login.html')


@app.route('/signup', methods=['GET', 'POST'])
def signup():
    if current_user.is_authenticated:
        return redirect(home_for_role(current_user.role))

    if request.method == 'POST':
        name = request.form.get('name', '').strip()
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')
        confirm_password = request.form.get('confirm_password', '')

        try:
            validate_signup(name, email, password, confirm_password)
            remote = get_auth().sign_up(email, password, full_name=name)
        except (ValidationError, AuthFailure) as e:
            flash(f'❌ {e}', 'error')
            return render_template('signup.html', name=name, email=email), 400

        if remote is None:
            flash('✅ Account created! Confirm your email, then log in.', 'success')
            return redirect(url_for('login'))

        return finish_sign_in(remote, full_name=name)

    return render_template('signup.html')


@app.route('/logout', methods=['POST'])
def logout():
    tokens = session.get(TOKENS_KEY)
    if tokens:
        try:
            get_auth().sign_out(tokens)
        except AuthFailure as e:
            app.logger.warning(f"Remote sign out failed, clearing local session anyway: {e}")

    logout_user()
    session.pop(AUTH_SNAPSHOT_KEY, None)
    session.pop(TOKENS_KEY, None)
    flash('✅ Logged out successfully!', 'success')
    return redirect(LANDING_VIEW)


# =============================================
# SHOP ROUTES
# =============================================

@app.route('/dashboard')
@require_auth()
def dashboard():
    category = request.args.get('category', ALL_CATEGORIES)
    store = get_store()

    products = []
    try:
        products = store.list_active_products()
    except StoreError as e:
        app.logger.error(f"Dashboard products unavailable: {e}")

    favorites = []
    if current_user.user_id:
        try:
            favorites = [str(pid) for pid in store.list_favorite_ids(current_user.user_id)]
        except StoreError as e:
            app.logger.error(f"Dashboard favorites unavailable: {e}")

    filtered = filter_by_category(products, category)
    return render_template('dashboard.html',
                           products=filtered,
                           category=category,
                           categories=CATEGORIES,
                           title=listing_title(category),
                           showing=showing_label(len(filtered)),
                           favorites=favorites,
                           colors=AVAILABLE_COLORS,
                           sizes=AVAILABLE_SIZES)


@app.route('/favorites/<product_id>/toggle', methods=['POST'])
@require_auth()
def toggle_favorite(product_id):
    if not current_user.user_id:
        flash('❌ Please login to add favorites', 'error')
        return redirect(request.referrer or url_for('dashboard'))

    store = get_store()
    try:
        favorite_ids = {str(pid): pid for pid in store.list_favorite_ids(current_user.user_id)}
        if product_id in favorite_ids:
            store.remove_favorite(current_user.user_id, favorite_ids[product_id])
        else:
            store.add_favorite(current_user.user_id, product_id)
    except StoreError:
        flash('❌ Failed to update favorites', 'error')

    return redirect(request.referrer or url_for('dashboard'))


def add_variant_to_cart(product_id, color, size):
    """Add one unit of a product variant to the remote cart and the session cart.

    Raises ValidationError for a missing choice, LookupError for an unknown
    product or variant and StoreError when the remote cart can't be updated.
    """
    validate_variant_choice(color, size)

    if not product_id:
        raise LookupError('Product not found')

    store = get_store()
    product = store.get_product(product_id)
    if not product:
        raise LookupError('Product not found')

    variant_id = store.find_variant_id(product['id'], color, size)
    if variant_id is None:
        raise LookupError(f"{product.get('name', 'This product')} is not available in {color}, {size}")

    if current_user.user_id:
        store.add_cart_row(current_user.user_id, product['id'], variant_id)

    line = CartReconciler(session).add_or_increment(
        product['id'], color, size, product.get('price') or 0,
        name=product.get('name'), image=product.get('image_url'),
    )
    return line


@app.route('/cart/add', methods=['POST'])
@require_auth()
def add_to_cart_form():
    color = request.form.get('color', '')
    size = request.form.get('size', '')

    try:
        line = add_variant_to_cart(request.form.get('product_id'), color, size)
    except (ValidationError, LookupError) as e:
        flash(f'❌ {e}', 'error')
    except StoreError:
        flash('❌ Failed to add item to cart', 'error')
    else:
        flash(f'✅ {line.name} ({line.color}, {line.size}) added to cart!', 'success')

    return redirect(request.referrer or url_for('dashboard'))


@app.route('/cart')
@require_auth()
def cart():
    reconciler = CartReconciler(session)
    return render_template('cart.html',
                           cart_items=reconciler.lines(),
                           subtotal=reconciler.subtotal(),
                           all_selected=reconciler.all_selected(),
                           colors=AVAILABLE_COLORS,
                           sizes=AVAILABLE_SIZES)


@app.route('/profile')
@require_auth()
def profile():
    orders = []
    if current_user.user_id:
        try:
            orders = [format_order(row) for row in get_store().list_orders(current_user.user_id)]
        except StoreError as e:
            app.logger.error(f"Order history unavailable: {e}")

    return render_template('profile.html', orders=orders)


# =============================================
# CART API
# =============================================

def cart_payload(reconciler):
    return {
        'items': [line.to_dict() for line in reconciler.lines()],
        'subtotal': reconciler.subtotal(),
        'count': reconciler.item_count(),
        'allSelected': reconciler.all_selected(),
    }


@app.route('/api/cart', methods=['GET'])
@require_auth(api=True)
def get_cart():
    return jsonify(cart_payload(CartReconciler(session)))


@app.route('/api/cart', methods=['POST'])
@require_auth(api=True)
def add_to_cart():
    data = request.get_json(silent=True) or {}

    try:
        add_variant_to_cart(data.get('product_id'), data.get('color', ''), data.get('size', ''))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except LookupError as e:
        return jsonify({'error': str(e)}), 404
    except StoreError:
        return jsonify({'error': 'Failed to add item to cart'}), 502

    return jsonify(cart_payload(CartReconciler(session)))


@app.route('/api/cart/clear', methods=['DELETE'])
@require_auth(api=True)
def clear_cart():
    reconciler = CartReconciler(session)
    reconciler.clear_all()
    return jsonify(cart_payload(reconciler))


@app.route('/api/cart/select-all', methods=['PUT'])
@require_auth(api=True)
def select_all_cart_items():
    data = request.get_json(silent=True) or {}
    try:
        selected = parse_selected(data.get('selected', True))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    reconciler = CartReconciler(session)
    reconciler.set_selected_all(selected)
    return jsonify(cart_payload(reconciler))


@app.route('/api/cart/<cart_id>', methods=['PUT'])
@require_auth(api=True)
def update_cart_item(cart_id):
    data = request.get_json(silent=True) or {}
    reconciler = CartReconciler(session)

    # Check everything first so a bad field leaves the cart untouched
    try:
        editing = 'color' in data or 'size' in data
        if editing:
            validate_variant_choice(data.get('color'), data.get('size'))
        delta = parse_quantity_delta(data['delta']) if 'delta' in data else None
        selected = parse_selected(data['selected']) if 'selected' in data else None
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    line = reconciler.get(cart_id)
    if line is None:
        return jsonify(cart_payload(reconciler))

    if editing:
        try:
            variant_id = get_store().find_variant_id(line.product_id, data['color'], data['size'])
        except StoreError:
            return jsonify({'error': 'Failed to check product variant'}), 502
        if variant_id is None:
            return jsonify({'error': f"{line.name or 'This product'} is not available in "
                                     f"{data['color']}, {data['size']}"}), 404
        cart_id = reconciler.edit_variant(cart_id, data['color'], data['size']).cart_id
    if delta is not None:
        reconciler.set_quantity(cart_id, delta)
    if selected is not None:
        reconciler.set_selected(cart_id, selected)

    return jsonify(cart_payload(reconciler))


@app.route('/api/cart/<cart_id>', methods=['DELETE'])
@require_auth(api=True)
def remove_from_cart(cart_id):
    reconciler = CartReconciler(session)
    reconciler.remove(cart_id)
    return jsonify(cart_payload(reconciler))


# =============================================
# ADMIN ROUTES
# =============================================

@app.route('/admin')
@require_auth(ROLE_ADMIN)
def admin_dashboard():
    status_filter = request.args.get('status', 'all')
    search = request.args.get('q', '')
    selected_user = request.args.get('user', '').strip()
    store = get_store()

    orders, users = [], []
    try:
        orders = [format_order(row) for row in store.list_orders()]
        users = store.list_profiles()
    except StoreError as e:
        app.logger.error(f"Admin data unavailable: {e}")

    return render_template('admin.html',
                           orders=filter_orders(orders, status_filter, search),
                           users=users,
                           total_orders=len(orders),
                           total_users=len(users),
                           total_revenue=total_revenue(orders),
                           status_filter=status_filter,
                           search=search,
                           selected_user=selected_user,
                           customer_orders=orders_for_customer(orders, selected_user) if selected_user else [],
                           statuses=ORDER_STATUSES)


@app.route('/admin/orders/<order_id>/status', methods=['POST'])
@require_auth(ROLE_ADMIN)
def admin_update_order_status(order_id):
    new_status = request.form.get('status')
    if new_status not in ORDER_STATUSES:
        flash('❌ Unknown order status', 'error')
        return redirect(url_for('admin_dashboard'))

    try:
        get_store().update_order_status(order_id, new_status)
        flash(f'✅ Order status updated to {new_status}', 'success')
    except StoreError:
        flash('❌ Failed to update order status', 'error')

    return redirect(url_for('admin_dashboard'))


@app.route('/admin/orders/<order_id>/delete', methods=['POST'])
@require_auth(ROLE_ADMIN)
def admin_delete_order(order_id):
    try:
        get_store().delete_order(order_id)
        flash('✅ Order deleted', 'success')
    except StoreError:
        flash('❌ Failed to delete order', 'error')

    return redirect(url_for('admin_dashboard'))


if __name__ == '__main__':
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    print("=" * 60)
    print("🚀 Tee-Shirt storefront starting...")
    print("📁 Template folder:", TEMPLATE_DIR)
    print("✅ Supabase configured:", bool(settings.supabase_url and settings.supabase_key))
    print("\n🌐 Access the site at: http://localhost:5000")
    print("   Admin console: http://localhost:5000/admin")
    print("=" * 60)

    app.run(debug=True)
