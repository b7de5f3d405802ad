"""SKD Tryout: timed CPNS practice exams on Supabase."""
import logging
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_database, reset_session_auth_client
from engine import CHOICES, MAIN_CATEGORIES
from tryout import admin, auth, history, payments
from tryout.config import LOG_LEVEL
from tryout.engine import TryoutEngine
from tryout.errors import NotFoundError, TryoutError, ValidationError
from tryout.scoring import category_key, format_duration, score_band

logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s: %(message)s")

PUBLIC_PAGES = ["Login", "Register"]
USER_PAGES = ["Dashboard", "History"]
HIDDEN_PAGES = ["Tryout", "Payment"]
BAND_ICON = {"high": "🟢", "medium": "🟡", "low": "🔴"}

st.set_page_config(page_title="SKD Tryout", layout="wide")
st.sidebar.title("SKD Tryout")


def go(page: str, **params):
    st.query_params.clear()
    st.query_params["page"] = page
    for key, value in params.items():
        st.query_params[key] = str(value)
    st.rerun()


def flash(message: str, kind: str = "error"):
    st.session_state["flash"] = (kind, message)


def show_flash():
    if "flash" in st.session_state:
        kind, message = st.session_state.pop("flash")
        getattr(st, kind)(message)


def rupiah(value) -> str:
    return f"Rp {float(value or 0):,.0f}".replace(",", ".")


def close_engine():
    engine = st.session_state.pop("engine", None)
    if engine is not None:
        engine.close()


try:
    db = get_database()
except ValueError as e:
    st.error(f"Could not connect to Supabase. Check .env (SUPABASE_URL, SUPABASE_KEY). {e}")
    st.stop()

user = auth.load_context(st.session_state)
pages = PUBLIC_PAGES if user is None else USER_PAGES + (["Admin"] if user.is_admin else [])
requested = st.query_params.get("page", pages[0])
if user is None and requested not in PUBLIC_PAGES:
    requested = "Login"
if requested not in pages + HIDDEN_PAGES or (user is None and requested in HIDDEN_PAGES):
    requested = pages[0]

if requested in pages:
    page = st.sidebar.radio("Navigate", pages, index=pages.index(requested), label_visibility="collapsed")
    if page != requested:
        go(page)
else:
    page = requested

if user is not None:
    st.sidebar.caption(f"Masuk sebagai {user.full_name or user.email}")
    if st.sidebar.button("Keluar"):
        close_engine()
        auth.logout(db, st.session_state)
        reset_session_auth_client()
        go("Login")

# Leaving the tryout page tears its timer down
if page != "Tryout":
    close_engine()

show_flash()

# ----- Login -----
if page == "Login":
    st.header("Masuk")
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Masuk", type="primary")
    if submitted:
        try:
            context = auth.login(db, email, password)
            auth.store_context(st.session_state, context)
            go("Dashboard")
        except TryoutError as e:
            st.error(f"Login gagal: {e.message}")
    st.caption("Belum punya akun? Pilih Register di sidebar.")

# ----- Register -----
elif page == "Register":
    st.header("Daftar Akun")
    with st.form("register"):
        full_name = st.text_input("Nama lengkap")
        email = st.text_input("Email")
        phone = st.text_input("Nomor telepon")
        password = st.text_input("Password", type="password")
        confirm = st.text_input("Konfirmasi password", type="password")
        submitted = st.form_submit_button("Daftar", type="primary")
    if submitted:
        try:
            auth.register(db, full_name, email, phone, password, confirm)
            flash("Registrasi berhasil. Silakan login.", "success")
            go("Login")
        except ValidationError as e:
            st.warning(e.message)
        except TryoutError as e:
            st.error(f"Registrasi gagal: {e.message}")

# ----- Dashboard -----
elif page == "Dashboard":
    st.header(f"Selamat datang, {user.full_name or user.email}")
    try:
        packages = admin.list_active_packages(db)
        recent = history.list_user_sessions(db, user.id, limit=5)
        paid = payments.completed_payments(db, user.id)
    except TryoutError as e:
        st.error(f"Gagal memuat data: {e.message}")
        st.stop()

    completed = [s for s in recent if s.get("status") == "completed"]
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Paket tersedia", len(packages))
    with col2:
        st.metric("Tryout terakhir", len(recent))
    with col3:
        st.metric("Skor terbaik", max((s.get("total_score") or 0 for s in completed), default=0))

    st.subheader("Paket Soal")
    if not packages:
        st.info("Belum ada paket soal aktif.")
    for pkg in packages:
        access = payments.has_access(pkg, paid)
        with st.container(border=True):
            left, right = st.columns([2, 1])
            with left:
                st.markdown(f"**{pkg['title']}**" + (" ✅" if access and pkg.get("requires_payment") else ""))
                st.caption(pkg.get("description") or "")
                st.write(f"{pkg.get('total_questions') or 0} soal · {pkg.get('duration_minutes')} menit")
                if pkg.get("requires_payment"):
                    st.write(rupiah(pkg.get('price')))
                label = "Mulai Tryout" if access else "Beli & Mulai"
                if st.button(label, key=f"start_{pkg['id']}", type="primary"):
                    if access:
                        go("Tryout", package=pkg["id"])
                    else:
                        go("Payment", package=pkg["id"])
            with right:
                st.caption("Ranking")
                try:
                    ranking = history.package_ranking(db, pkg["id"], limit=5)
                except TryoutError:
                    ranking = []
                if not ranking:
                    st.caption("Belum ada peserta")
                for entry in ranking:
                    score = entry["session"].get("total_score")
                    st.write(f"{entry['rank']}. {entry['user_name']} {BAND_ICON[score_band(score)]} {score}")

    if recent:
        st.subheader("Tryout Terakhir")
        names = history.load_packages(db, [s["package_id"] for s in recent])
        for s in recent:
            title = names.get(s["package_id"], {}).get("title", "Paket Tidak Diketahui")
            status = "Selesai" if s.get("status") == "completed" else "Berlangsung"
            score = f" · Skor: {s.get('total_score')}" if s.get("status") == "completed" else ""
            st.write(f"- {title} · {status}{score}")

# ----- Payment -----
elif page == "Payment":
    package_id = st.query_params.get("package")
    st.header("Pembayaran")
    try:
        pkg = db.entity("QuestionPackage").get(package_id)
        settings = payments.get_payment_settings(db)
    except NotFoundError:
        st.error("Paket tidak ditemukan")
        if st.button("Kembali ke Dashboard"):
            go("Dashboard")
        st.stop()
    except TryoutError as e:
        st.error(f"Gagal memuat data pembayaran: {e.message}")
        st.stop()

    st.subheader(pkg["title"])
    st.metric("Harga", rupiah(pkg.get('price')))

    key = f"payment_{package_id}"
    if key not in st.session_state:
        try:
            st.session_state[key] = payments.find_pending_payment(db, user.id, package_id)
        except TryoutError as e:
            st.error(e.message)
            st.stop()
    payment = st.session_state[key]

    if payment is None:
        st.info("Klik tombol di bawah untuk membuat pembayaran QRIS")
        if st.button("Buat Pembayaran QRIS", type="primary"):
            try:
                st.session_state[key] = payments.create_payment(db, user.id, pkg, settings)
                flash("Silakan scan QRIS code untuk melakukan pembayaran", "success")
                st.rerun()
            except TryoutError as e:
                st.error(f"Gagal membuat pembayaran: {e.message}")
        st.stop()

    status = payment.get("status")
    if status == payments.PENDING:
        st.code(payment.get("qris_code") or "", language=None)
        st.write(f"Waktu tersisa: {format_duration(payments.seconds_left(payment))}")
        col1, col2 = st.columns(2)
        with col1:
            check = st.button("Cek Status Pembayaran", type="primary")
        with col2:
            demo = st.button("[Demo] Simulasi Pembayaran Berhasil")
        try:
            if demo:
                st.session_state[key] = payments.simulate_payment_success(db, payment["id"])
                st.rerun()
            if check:
                st.session_state[key] = payments.check_payment_status(db, payment["id"])
                st.rerun()
        except TryoutError as e:
            st.error(f"Gagal memperbarui status pembayaran: {e.message}")
    elif status == payments.COMPLETED:
        st.success("Pembayaran berhasil. Anda dapat mulai mengerjakan tryout sekarang.")
        if st.button("Mulai Tryout", type="primary"):
            st.session_state.pop(key, None)
            go("Tryout", package=package_id)
    else:
        st.error("Pembayaran gagal atau kedaluwarsa. Silakan buat pembayaran baru.")
        if st.button("Buat Pembayaran Baru"):
            st.session_state[key] = None
            st.rerun()

# ----- Tryout -----
elif page == "Tryout":
    package_id = st.query_params.get("package")
    engine = st.session_state.get("engine")
    if engine is None or engine.package is None or engine.package["id"] != package_id:
        close_engine()
        try:
            pkg = db.entity("QuestionPackage").get(package_id)
            if not payments.has_access(pkg, payments.completed_payments(db, user.id)):
                go("Payment", package=package_id)
            engine = TryoutEngine(db)
            engine.start_session(user.id, package_id)
            st.session_state["engine"] = engine
            st.session_state.pop("confirm_finish", None)
        except NotFoundError:
            flash("Paket soal tidak ditemukan atau belum ada soal")
            go("Dashboard")
        except TryoutError as e:
            flash(f"Gagal memulai tryout: {e.message}")
            go("Dashboard")

    if engine.is_finished:
        result = engine.result
        st.success(f"Tryout selesai. Skor Anda: {result['score']}")
        col1, col2, col3 = st.columns(3)
        col1.metric("Benar", result["correct"])
        col2.metric("Salah", result["wrong"])
        col3.metric("Tidak dijawab", result["unanswered"])
        if st.button("Lihat Riwayat", type="primary"):
            go("History")
        st.stop()

    @st.fragment(run_every=1)
    def countdown():
        try:
            state = engine.poll()
        except TryoutError as e:
            st.error(f"Gagal menyelesaikan tryout: {e.message}")
            return
        failed = engine.failed_answers()
        if engine.is_finished:
            st.rerun()
        if failed:
            # The page body clears the rejected choices and tells the user
            st.session_state.setdefault("failed_answers", []).extend(failed)
            st.rerun()
        if engine.timed_out:
            st.error("Waktu habis. Tryout akan diselesaikan otomatis.")
        st.markdown(f"### ⏱ {format_duration(engine.remaining_seconds)}")
        return state

    for q in st.session_state.pop("failed_answers", []) + engine.failed_answers():
        st.session_state.pop(f"answer_{engine.session['id']}_{q['id']}", None)
        st.toast(f"Jawaban soal {q['question_number']} gagal disimpan. Silakan pilih ulang.", icon="⚠️")

    summary = engine.get_session_summary()
    answers = engine.answers()
    question = engine.current_question()
    main, sub = category_key(question)

    head, timer = st.columns([3, 1])
    with head:
        st.subheader(engine.package["title"])
        st.caption(f"Soal {summary['current_question']} dari {summary['total_questions']} · {main} · {sub}")
        st.progress(summary["progress_percent"] / 100)
        st.caption(f"Terjawab: {summary['answered']}/{summary['total_questions']}")
    with timer:
        countdown()

    with st.sidebar:
        st.caption("Navigasi Soal")
        cols = st.columns(5)
        for i, q in enumerate(engine.questions):
            marker = "●" if str(q["id"]) in answers else ""
            if cols[i % 5].button(f"{i + 1}{marker}", key=f"nav_{i}", help=" - ".join(category_key(q))):
                engine.go_to(i)
                st.rerun()

    st.write(question.get("question_text", ""))
    options = {c: question.get(f"option_{c.lower()}") or "" for c in CHOICES}
    selected = answers.get(str(question["id"]))
    radio_key = f"answer_{engine.session['id']}_{question['id']}"

    def on_choice():
        try:
            engine.select_answer(st.session_state[radio_key])
        except TryoutError as e:
            flash(f"Gagal menyimpan jawaban: {e.message}")

    st.radio(
        "Pilih jawaban:",
        list(CHOICES),
        index=CHOICES.index(selected) if selected in CHOICES else None,
        format_func=lambda c: f"{c}. {options[c]}",
        key=radio_key,
        on_change=on_choice,
        disabled=engine.timed_out,
    )

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("← Sebelumnya", disabled=engine.current_index == 0):
            engine.previous_question()
            st.rerun()
    with col2:
        if st.button("Selanjutnya →", disabled=engine.current_index >= len(engine.questions) - 1):
            engine.next_question()
            st.rerun()
    with col3:
        if not st.session_state.get("confirm_finish"):
            if st.button("Selesai", type="primary"):
                st.session_state["confirm_finish"] = True
                st.rerun()
        else:
            st.warning("Apakah Anda yakin ingin menyelesaikan tryout?")
            yes, no = st.columns(2)
            if yes.button("Ya, selesai", type="primary"):
                try:
                    engine.finish_session()
                    st.session_state.pop("confirm_finish", None)
                    st.rerun()
                except TryoutError as e:
                    st.error(f"Gagal menyelesaikan tryout: {e.message}")
            if no.button("Batal"):
                st.session_state.pop("confirm_finish", None)
                st.rerun()

# ----- History -----
elif page == "History":
    st.header("Riwayat Tryout")
    try:
        sessions = history.list_user_sessions(db, user.id)
        packages_by_id = history.load_packages(db, [s["package_id"] for s in sessions])
    except TryoutError as e:
        st.error(f"Gagal memuat riwayat: {e.message}")
        st.stop()

    stats = history.history_stats(sessions)
    if stats:
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Tryout selesai", stats["total_sessions"])
        col2.metric("Rata-rata skor", stats["average_score"])
        col3.metric("Skor tertinggi", stats["highest_score"])
        col4.metric("Akurasi", f"{stats['accuracy']}%")

    if not sessions:
        st.info("Belum ada riwayat tryout.")
        st.stop()

    def label(s):
        title = packages_by_id.get(s["package_id"], {}).get("title", "Paket Tidak Diketahui")
        status = f"Skor {s.get('total_score')}" if s.get("status") == "completed" else "Berlangsung"
        return f"{title} · {(s.get('created_at') or '')[:16]} · {status}"

    chosen = st.selectbox("Pilih sesi", sessions, format_func=label)
    if chosen and chosen.get("status") == "completed":
        try:
            details = history.session_details(db, chosen)
        except TryoutError as e:
            st.error(f"Gagal memuat detail sesi: {e.message}")
            st.stop()
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Skor", f"{BAND_ICON[score_band(chosen.get('total_score'))]} {chosen.get('total_score')}")
        col2.metric("Benar", chosen.get("correct_answers"))
        col3.metric("Salah", chosen.get("wrong_answers"))
        col4.metric("Tidak dijawab", chosen.get("unanswered"))
        minutes = history.session_duration_minutes(chosen)
        if minutes is not None:
            st.caption(f"Durasi: {minutes} menit")
        st.subheader("Statistik per Kategori")
        for row in details["tag_stats"]:
            st.write(
                f"**{row['main_category']} · {row['sub_category']}** · {row['accuracy']}% "
                f"({row['correct_answers']}/{row['total_questions']} benar, {row['wrong_answers']} salah, "
                f"{row['unanswered']} kosong) · rata-rata {format_duration(row['average_time_seconds'])}, "
                f"total {format_duration(row['total_time_seconds'])}"
            )
    elif chosen:
        st.info("Sesi ini belum selesai.")

# ----- Admin -----
elif page == "Admin":
    st.header("Admin")
    tab_packages, tab_questions, tab_stats, tab_payment = st.tabs(["Paket", "Soal", "Statistik", "Pembayaran"])

    try:
        all_packages = admin.list_packages(db)
    except TryoutError as e:
        st.error(f"Gagal memuat paket: {e.message}")
        st.stop()

    with tab_packages:
        editing = st.selectbox(
            "Paket", [None] + all_packages,
            format_func=lambda p: "+ Tambah Paket" if p is None else p["title"],
        )
        current = editing or {}
        with st.form("package_form"):
            title = st.text_input("Judul", value=current.get("title", ""))
            description = st.text_area("Deskripsi", value=current.get("description", ""))
            duration = st.number_input("Durasi (menit)", min_value=1, value=int(current.get("duration_minutes") or 110))
            requires_payment = st.checkbox("Berbayar", value=current.get("requires_payment", True))
            price = st.number_input("Harga (Rp)", min_value=0.0, value=float(current.get("price") or 0))
            is_active = st.checkbox("Aktif", value=current.get("is_active", True))
            saved = st.form_submit_button("Simpan", type="primary")
        if saved:
            try:
                admin.save_package(db, {
                    "title": title, "description": description, "duration_minutes": duration,
                    "price": price, "requires_payment": requires_payment, "is_active": is_active,
                }, package_id=current.get("id"))
                flash("Paket soal berhasil disimpan", "success")
                st.rerun()
            except ValidationError as e:
                st.warning(e.message)
            except TryoutError as e:
                st.error(f"Gagal menyimpan paket soal: {e.message}")
        if editing:
            confirm = st.checkbox("Saya yakin ingin menghapus paket ini", key="confirm_delete_package")
            if st.button("Hapus Paket", disabled=not confirm):
                try:
                    admin.delete_package(db, editing["id"])
                    flash("Paket soal berhasil dihapus", "success")
                    st.rerun()
                except TryoutError as e:
                    st.error(f"Gagal menghapus paket soal: {e.message}")

    with tab_questions:
        if not all_packages:
            st.info("Buat paket terlebih dahulu.")
        else:
            pkg = st.selectbox("Kelola soal untuk paket", all_packages, format_func=lambda p: p["title"], key="question_pkg")
            try:
                questions = admin.list_questions(db, pkg["id"])
            except TryoutError as e:
                st.error(f"Gagal memuat soal: {e.message}")
                questions = []
            q_edit = st.selectbox(
                "Soal", [None] + questions,
                format_func=lambda q: "+ Tambah Soal" if q is None else f"{q['question_number']}. {q['question_text'][:60]}",
            )
            current = q_edit or {}
            with st.form("question_form"):
                number = st.number_input(
                    "Nomor soal", min_value=1,
                    value=int(current.get("question_number") or admin.next_question_number(questions)),
                )
                text = st.text_area("Pertanyaan", value=current.get("question_text", ""))
                main_options = [""] + list(MAIN_CATEGORIES)
                main_category = st.selectbox(
                    "Kategori utama", main_options,
                    index=main_options.index(current.get("main_category")) if current.get("main_category") in main_options else 0,
                )
                sub_category = st.text_input("Sub kategori", value=current.get("sub_category") or "")
                option_values = {
                    name: st.text_input(f"Pilihan {name[-1].upper()}", value=current.get(name, ""))
                    for name in admin.OPTION_FIELDS
                }
                correct = st.selectbox(
                    "Jawaban benar", list(CHOICES),
                    index=CHOICES.index(current["correct_answer"]) if current.get("correct_answer") in CHOICES else 0,
                )
                explanation = st.text_area("Penjelasan", value=current.get("explanation") or "")
                saved = st.form_submit_button("Simpan", type="primary")
            if saved:
                try:
                    admin.save_question(db, pkg["id"], {
                        "question_number": number, "question_text": text, "main_category": main_category,
                        "sub_category": sub_category, "correct_answer": correct, "explanation": explanation,
                        **option_values,
                    }, question_id=current.get("id"))
                    flash("Soal berhasil disimpan", "success")
                    st.rerun()
                except ValidationError as e:
                    st.warning(e.message)
                except TryoutError as e:
                    st.error(f"Gagal menyimpan soal: {e.message}")
            if q_edit:
                confirm = st.checkbox("Saya yakin ingin menghapus soal ini", key="confirm_delete_question")
                if st.button("Hapus Soal", disabled=not confirm):
                    try:
                        admin.delete_question(db, pkg["id"], q_edit["id"])
                        flash("Soal berhasil dihapus", "success")
                        st.rerun()
                    except TryoutError as e:
                        st.error(f"Gagal menghapus soal: {e.message}")

    with tab_stats:
        if all_packages:
            pkg = st.selectbox("Paket", all_packages, format_func=lambda p: p["title"], key="stats_pkg")
            try:
                stats = history.package_stats(db, pkg["id"])
            except TryoutError as e:
                st.error(f"Gagal memuat statistik: {e.message}")
                st.stop()
            col1, col2, col3, col4 = st.columns(4)
            col1.metric("Pembayaran", stats["total_payments"])
            col2.metric("Peserta selesai", stats["total_sessions"])
            col3.metric("Rata-rata skor", stats["average_score"])
            col4.metric("Skor tertinggi", stats["highest_score"])
            for s in stats["sessions"]:
                name = stats["user_names"].get(s.get("user_id"), history.UNKNOWN_USER)
                st.write(f"- {name}: {BAND_ICON[score_band(s.get('total_score'))]} {s.get('total_score')}")

    with tab_payment:
        try:
            current = payments.get_payment_settings(db) or {}
        except TryoutError as e:
            st.error(f"Gagal memuat pengaturan pembayaran: {e.message}")
            current = {}
        with st.form("payment_settings"):
            merchant_id = st.text_input("Merchant ID QRIS", value=current.get("qris_merchant_id", ""))
            merchant_name = st.text_input("Nama Merchant", value=current.get("qris_merchant_name", ""))
            timeout = st.number_input(
                "Timeout Pembayaran (menit)", min_value=5, max_value=60,
                value=int(payments.payment_timeout_minutes(current)),
            )
            active = st.checkbox("Sistem Pembayaran Aktif", value=current.get("is_active", True))
            saved = st.form_submit_button("Simpan Pengaturan", type="primary")
        if saved:
            try:
                payments.save_payment_settings(db, {
                    "qris_merchant_id": merchant_id, "qris_merchant_name": merchant_name,
                    "payment_timeout_minutes": timeout, "is_active": active,
                })
                st.success("Pengaturan pembayaran berhasil disimpan")
            except ValidationError as e:
                st.warning(e.message)
            except TryoutError as e:
                st.error(f"Gagal menyimpan pengaturan pembayaran: {e.message}")
